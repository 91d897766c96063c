"""
Mockup pipeline for Mockup Studio.

Runs one composite request through its stages in strict order:
resolve dimensions -> render frame and mat -> plan wall placement ->
composite and encode. Stages share no state between requests; the
cancellation token is checked at every stage boundary so an aborted
request stops without producing output.
"""

import threading
import time
import uuid
from typing import Any, Optional, Tuple

from loguru import logger

from mockup_studio.assets import fit_artwork, load_artwork, load_environment
from mockup_studio.composite import Compositor, CompositeSettings
from mockup_studio.config import AppConfig, get_config
from mockup_studio.dimensions import DimensionResolver, PixelGeometry, parse_dimensions
from mockup_studio.errors import InvalidDimension, PipelineCancelled
from mockup_studio.frames import FrameRenderer
from mockup_studio.layout import WallPlacementPlanner
from mockup_studio.models import (
    ArtworkAsset, ArtworkDimensions, CompositeRequest, EnvironmentAsset, FrameSpec,
    MatSpec, MockupResult, PlacementRect, WallRegion, parse_frame_style, parse_mat_option
)


class CancellationToken:
    """Cooperative cancellation flag shared between a request and its worker."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, stage: str, request_id: str = None) -> None:
        """Raise PipelineCancelled if the request was aborted."""
        if self._event.is_set():
            logger.info(f"Request {request_id} cancelled before {stage}: {self.reason}")
            raise PipelineCancelled(stage, request_id)


class MockupPipeline:
    """Resolver -> Renderer -> Planner -> Compositor for one request at a time."""

    def __init__(self,
                 resolver: DimensionResolver = None,
                 renderer: FrameRenderer = None,
                 planner: WallPlacementPlanner = None,
                 compositor: Compositor = None,
                 config: AppConfig = None):
        self.config = config or get_config()
        self.resolver = resolver or DimensionResolver(self.config.PX_PER_INCH_DEFAULT)
        self.renderer = renderer or FrameRenderer(self.resolver)
        self.planner = planner or WallPlacementPlanner(
            anchor_ratio=self.config.WALL_ANCHOR_RATIO,
            scale_fraction=self.config.WALL_SCALE_FRACTION,
            margin_px=self.config.LAYOUT_MARGIN_PX,
        )
        self.compositor = compositor or Compositor(CompositeSettings.from_config(self.config))

    def run(self, request: CompositeRequest, token: CancellationToken = None) -> MockupResult:
        """Produce the encoded mockup for `request`, or raise; never a partial result."""
        token = token or CancellationToken()
        request_id = request.request_id or uuid.uuid4().hex[:12]
        started = time.perf_counter()
        logger.info(f"Mockup {request_id} started - environment: {request.environment.name} "
                    f"({request.environment.source})")

        # Stage 1: dimensions and catalog checks, before any raster work
        token.check("resolve", request_id)
        geometry = self.resolver.resolve(request.artwork.dimensions)
        self.renderer.style_info(request.frame.style)
        self.renderer.mat_width_px(request.mat)
        logger.debug(f"Mockup {request_id} artwork {geometry.width_px}x{geometry.height_px}px, "
                     f"frame {request.frame.style.value}, mat {request.mat.option.value}")
        renderer, geometry = self._bounded_stages(request, geometry)

        # Stage 2: frame and mat
        token.check("render", request_id)
        artwork = fit_artwork(load_artwork(request.artwork), geometry.size)
        framed = renderer.render(artwork, request.frame, request.mat)

        # Stage 3: wall placement
        token.check("plan", request_id)
        environment = load_environment(request.environment)
        rect = self.planner.plan(
            framed.size,
            environment.size,
            wall_region=request.environment.wall_region,
            orientation=request.environment.orientation,
        )

        # Stage 4: composite and encode
        token.check("composite", request_id)
        image = self.compositor.composite(environment, framed.image, rect)
        output_format = (request.output_format or self.config.OUTPUT_FORMAT).upper()
        data = self.compositor.encode(image, output_format, request.quality)

        elapsed = time.perf_counter() - started
        logger.info(f"Mockup {request_id} finished in {elapsed:.2f}s - {image.size[0]}x{image.size[1]} "
                    f"{output_format}, placement {rect.to_dict()}")

        return MockupResult(
            image_bytes=data,
            output_format=output_format,
            size=image.size,
            placement=rect,
            framed_size=framed.size,
            request_id=request_id,
        )

    def _bounded_stages(self, request: CompositeRequest,
                        geometry: PixelGeometry) -> Tuple[FrameRenderer, PixelGeometry]:
        """
        Keep the framed raster within MAX_ARTWORK_PX on its long side.

        Oversized requests are rendered at a lower pixels-per-inch shared by
        artwork, mat and frame, so the outer size is still the exact sum of
        its parts. The planner rescales to the wall either way.
        """
        limit = self.config.MAX_ARTWORK_PX
        requested = _framed_long_side(self.renderer, geometry, request)
        if not limit or requested <= limit:
            return self.renderer, geometry

        px_per_inch = self.resolver.px_per_inch
        long_side = requested
        for _ in range(4):
            # Rounding can add up to 2.5px across artwork, mat and frame
            px_per_inch *= max(1, limit - 3) / long_side
            resolver = DimensionResolver(px_per_inch)
            renderer = FrameRenderer(resolver)
            geometry = resolver.resolve(request.artwork.dimensions)
            long_side = _framed_long_side(renderer, geometry, request)
            if long_side <= limit:
                logger.warning(f"Framed artwork would be {requested}px; rendering at "
                               f"{px_per_inch:.2f} px/in ({long_side}px)")
                return renderer, geometry

        raise InvalidDimension(f"framed artwork cannot be rendered within {limit}px",
                               width=request.artwork.dimensions.width,
                               height=request.artwork.dimensions.height,
                               unit=request.artwork.dimensions.unit)


def _framed_long_side(renderer: FrameRenderer, geometry: PixelGeometry, request: CompositeRequest) -> int:
    border = renderer.mat_width_px(request.mat) + renderer.frame_width_px(request.frame)
    return max(geometry.size) + 2 * border


def build_request(artwork_bytes: bytes,
                  width: Any,
                  height: Any,
                  unit: Any,
                  environment: EnvironmentAsset,
                  frame_style: Any = "none",
                  frame_width: Any = None,
                  frame_color: Optional[str] = None,
                  mat_option: Any = "none",
                  mat_width: Any = 2.0,
                  artwork_filename: str = None,
                  output_format: str = None,
                  request_id: str = None) -> CompositeRequest:
    """Build a CompositeRequest from raw (form) values, validating enums and sizes."""
    dimensions = parse_dimensions(width, height, unit)
    style = parse_frame_style(frame_style)
    option = parse_mat_option(mat_option)

    border_width = None
    if frame_width not in (None, ''):
        border_width = DimensionResolver.parse_length(frame_width, 'frame width')
    mat_inches = 2.0
    if mat_width not in (None, ''):
        mat_inches = DimensionResolver.parse_length(mat_width, 'mat width')

    return CompositeRequest(
        artwork=ArtworkAsset(data=artwork_bytes, dimensions=dimensions, filename=artwork_filename),
        environment=environment,
        frame=FrameSpec(style=style, border_width=border_width, unit=dimensions.unit,
                        color_hint=frame_color or None),
        mat=MatSpec(option=option, width=mat_inches),
        output_format=output_format,
        request_id=request_id,
    )


def composite(artwork_bytes: bytes,
              dimensions: ArtworkDimensions,
              frame_spec: FrameSpec,
              mat_spec: MatSpec,
              environment_bytes: bytes,
              wall_region: Optional[WallRegion] = None,
              pipeline: MockupPipeline = None,
              token: CancellationToken = None) -> Tuple[bytes, PlacementRect]:
    """
    Composite framed artwork onto an environment.

    Returns the encoded mockup bytes and the placement rectangle used.
    """
    request = CompositeRequest(
        artwork=ArtworkAsset(data=artwork_bytes, dimensions=dimensions),
        environment=EnvironmentAsset(data=environment_bytes, wall_region=wall_region),
        frame=frame_spec,
        mat=mat_spec,
    )
    result = (pipeline or MockupPipeline()).run(request, token)
    return result.image_bytes, result.placement
