"""
Wall-placement planner for Mockup Studio.

This module handles:
- Choosing the wall region (declared by the environment, else the whole raster)
- Scaling the framed artwork so its long edge spans a fixed fraction of the wall
- Centering horizontally and anchoring vertically at eye level
- Keeping the placement inside the environment raster with a margin

Placement is flat and frontal; there is no perspective model.
"""

from typing import Optional, Tuple

from loguru import logger

from mockup_studio.config import get_config
from mockup_studio.errors import RenderError
from mockup_studio.models import Orientation, PlacementRect, WallRegion


class WallPlacementPlanner:
    """Decides where the framed artwork hangs and how large it is."""

    def __init__(self,
                 anchor_ratio: Optional[float] = None,
                 scale_fraction: Optional[float] = None,
                 margin_px: Optional[int] = None):
        config = get_config()
        self.anchor_ratio = config.WALL_ANCHOR_RATIO if anchor_ratio is None else anchor_ratio
        self.scale_fraction = config.WALL_SCALE_FRACTION if scale_fraction is None else scale_fraction
        self.margin_px = config.LAYOUT_MARGIN_PX if margin_px is None else margin_px

        if not 0.0 <= self.anchor_ratio <= 1.0:
            raise RenderError(f"Wall anchor ratio must be within [0, 1], got {self.anchor_ratio}")
        if not 0.0 < self.scale_fraction <= 1.0:
            raise RenderError(f"Wall scale fraction must be within (0, 1], got {self.scale_fraction}")

    def working_region(self,
                       environment_size: Tuple[int, int],
                       wall_region: Optional[WallRegion] = None) -> PlacementRect:
        """Declared wall region clipped to the raster, or the full raster."""
        env_width, env_height = environment_size
        full = PlacementRect(0, 0, env_width, env_height)
        if wall_region is None:
            return full

        left = max(0, wall_region.x)
        top = max(0, wall_region.y)
        right = min(env_width, wall_region.x + wall_region.width)
        bottom = min(env_height, wall_region.y + wall_region.height)
        if right - left < 1 or bottom - top < 1:
            logger.warning(f"Wall region {wall_region} lies outside the {env_width}x{env_height} "
                           f"environment, using the full raster")
            return full
        return PlacementRect(left, top, right - left, bottom - top)

    def plan(self,
             framed_size: Tuple[int, int],
             environment_size: Tuple[int, int],
             wall_region: Optional[WallRegion] = None,
             orientation: Optional[Orientation] = None) -> PlacementRect:
        """
        Compute the placement rectangle for a framed raster.

        The long edge of the framed raster is scaled to `scale_fraction` of the
        wall width, then shrunk further if it would not fit inside the wall
        minus the margin. The result never exceeds the environment bounds.
        """
        framed_width, framed_height = framed_size
        env_width, env_height = environment_size
        if framed_width < 1 or framed_height < 1:
            raise RenderError(f"Framed artwork has no area: {framed_size}")
        if env_width < 1 or env_height < 1:
            raise RenderError(f"Environment has no area: {environment_size}")

        actual = Orientation.from_size(env_width, env_height)
        if orientation is not None and orientation != actual:
            logger.warning(f"Environment declared {orientation.value} but raster is "
                           f"{env_width}x{env_height} ({actual.value})")

        region = self.working_region(environment_size, wall_region)

        # Shrink the margin for tiny walls so at least one pixel stays placeable
        margin = max(0, min(self.margin_px, (region.width - 1) // 2, (region.height - 1) // 2))
        avail_width = region.width - 2 * margin
        avail_height = region.height - 2 * margin

        scale = (self.scale_fraction * region.width) / max(framed_width, framed_height)
        scale = min(scale, avail_width / framed_width, avail_height / framed_height)

        width = max(1, min(avail_width, int(round(framed_width * scale))))
        height = max(1, min(avail_height, int(round(framed_height * scale))))

        # Equal left/right margins need the leftover width to split evenly
        if (region.width - width) % 2 and width > 1:
            width -= 1

        x = region.x + (region.width - width) // 2

        center_y = region.y + self.anchor_ratio * region.height
        y = int(round(center_y - height / 2))
        y = min(max(y, region.y + margin), region.bottom - margin - height)

        rect = PlacementRect(x, y, width, height)
        logger.debug(f"Planned placement {rect.to_dict()} for framed {framed_size} "
                     f"on {environment_size} ({actual.value}, scale {scale:.4f})")
        return rect
