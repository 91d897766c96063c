"""
Composite module for Mockup Studio.

This module handles:
- Resampling the framed artwork to the planned placement size
- Matching the framed artwork to the ambient wall color
- Grounding it with a soft contact shadow
- Alpha-blending it onto the environment and encoding the final mockup

The compositor never touches the filesystem: it returns complete bytes or raises.
"""

import io
import math
from typing import Dict, Any

import numpy as np
from PIL import Image, ImageDraw, ImageFilter
from loguru import logger

from mockup_studio.config import AppConfig, get_config
from mockup_studio.errors import CompositeError, EncodingFailure
from mockup_studio.models import PlacementRect


SUPPORTED_OUTPUT_FORMATS = ('JPEG', 'PNG', 'WEBP')


class CompositeSettings:
    """Settings for composite operations."""

    def __init__(self,
                 output_format: str = 'JPEG',
                 quality: int = 95,
                 optimize: bool = True,
                 progressive: bool = True,
                 shadow_max_alpha: float = 0.35,
                 shadow_offset_ratio: float = 0.02,
                 shadow_blur_ratio: float = 0.025,
                 lighting_tint_strength: float = 0.06):
        self.output_format = output_format
        self.quality = quality
        self.optimize = optimize
        self.progressive = progressive
        self.shadow_max_alpha = min(max(shadow_max_alpha, 0.0), 1.0)
        self.shadow_offset_ratio = shadow_offset_ratio
        self.shadow_blur_ratio = shadow_blur_ratio
        self.lighting_tint_strength = min(max(lighting_tint_strength, 0.0), 1.0)

    @classmethod
    def from_config(cls, config: AppConfig = None) -> "CompositeSettings":
        config = config or get_config()
        return cls(
            output_format=config.OUTPUT_FORMAT,
            quality=config.OUTPUT_QUALITY,
            shadow_max_alpha=config.CONTACT_SHADOW_MAX_ALPHA,
            shadow_offset_ratio=config.CONTACT_SHADOW_OFFSET_RATIO,
            shadow_blur_ratio=config.CONTACT_SHADOW_BLUR_RATIO,
            lighting_tint_strength=config.LIGHTING_TINT_STRENGTH,
        )


class Compositor:
    """Places a framed artwork raster onto an environment raster."""

    def __init__(self, settings: CompositeSettings = None):
        self.settings = settings or CompositeSettings.from_config()

    def composite(self, environment: Image.Image, framed: Image.Image, rect: PlacementRect) -> Image.Image:
        """
        Composite the framed artwork onto the environment at `rect`.

        Steps run in order: resample, lighting tint, contact shadow, alpha blend.
        Returns a new RGB image the size of the environment.
        """
        env_width, env_height = environment.size
        if rect.x < 0 or rect.y < 0 or rect.right > env_width or rect.bottom > env_height:
            raise CompositeError(
                f"Placement {rect.to_dict()} exceeds environment {environment.size}",
                details={'placement': rect.to_dict(), 'environment_size': list(environment.size)}
            )

        # convert() always returns a new image, so the caller's raster is never modified
        canvas = environment.convert('RGB')

        placed = self.resample(framed, rect)
        placed = self.match_lighting(placed, canvas, rect)
        self.apply_contact_shadow(canvas, rect)
        result = self.blend(canvas, placed, rect)

        logger.debug(f"Composited framed {framed.size} -> {placed.size} at ({rect.x}, {rect.y}) "
                     f"onto {environment.size}")
        return result

    def resample(self, framed: Image.Image, rect: PlacementRect) -> Image.Image:
        """High-quality Lanczos resample to the placement size."""
        if framed.size == rect.size:
            return framed
        return framed.resize(rect.size, Image.Resampling.LANCZOS)

    def ambient_color(self, environment: Image.Image, rect: PlacementRect) -> np.ndarray:
        """Mean wall color in a band around the placement, as floats in [0, 1]."""
        pad_x = max(1, rect.width // 4)
        pad_y = max(1, rect.height // 4)
        box = (
            max(0, rect.x - pad_x),
            max(0, rect.y - pad_y),
            min(environment.width, rect.right + pad_x),
            min(environment.height, rect.bottom + pad_y),
        )
        sample = np.asarray(environment.crop(box).convert('RGB'), dtype=np.float64)
        return sample.reshape(-1, 3).mean(axis=0) / 255.0

    def match_lighting(self, placed: Image.Image, environment: Image.Image, rect: PlacementRect) -> Image.Image:
        """Cast the wall's ambient color onto the framed artwork."""
        strength = self.settings.lighting_tint_strength
        if strength <= 0:
            return placed

        ambient = self.ambient_color(environment, rect)
        peak = float(ambient.max())
        if peak <= 0:
            return placed
        multiplier = (1.0 - strength) + strength * (ambient / peak)

        has_alpha = placed.mode == 'RGBA'
        rgb = np.asarray(placed.convert('RGB'), dtype=np.float64)
        tinted = np.clip(np.rint(rgb * multiplier[None, None, :]), 0, 255).astype(np.uint8)
        result = Image.fromarray(tinted, 'RGB')
        if has_alpha:
            result.putalpha(placed.getchannel('A'))
        return result

    def apply_contact_shadow(self, canvas: Image.Image, rect: PlacementRect) -> None:
        """Darken a soft, downward-offset rectangle under the placement (in place on `canvas`)."""
        alpha = int(round(255 * self.settings.shadow_max_alpha))
        if alpha <= 0:
            return

        offset = max(1, int(round(rect.height * self.settings.shadow_offset_ratio)))
        radius = max(1.0, rect.height * self.settings.shadow_blur_ratio)
        inset = int(round(rect.width * 0.01))
        pad = int(math.ceil(3 * radius)) + offset

        box = (
            max(0, rect.x - pad),
            max(0, rect.y - pad),
            min(canvas.width, rect.right + pad),
            min(canvas.height, rect.bottom + pad),
        )
        mask = Image.new('L', (box[2] - box[0], box[3] - box[1]), 0)
        draw = ImageDraw.Draw(mask)
        draw.rectangle(
            [rect.x - box[0] + inset, rect.y - box[1] + offset,
             rect.right - box[0] - 1 - inset, rect.bottom - box[1] - 1 + offset],
            fill=alpha
        )
        mask = mask.filter(ImageFilter.GaussianBlur(radius))
        canvas.paste((0, 0, 0), box, mask)

    def blend(self, canvas: Image.Image, placed: Image.Image, rect: PlacementRect) -> Image.Image:
        """Alpha-blend the placed raster over the canvas at the rect origin."""
        if placed.mode == 'RGBA':
            temp_canvas = canvas.convert('RGBA')
            overlay = Image.new('RGBA', temp_canvas.size, (0, 0, 0, 0))
            overlay.paste(placed, (rect.x, rect.y))
            result = Image.alpha_composite(temp_canvas, overlay)
            return result.convert('RGB')

        canvas.paste(placed.convert('RGB'), (rect.x, rect.y))
        return canvas

    def encode(self, image: Image.Image, output_format: str = None, quality: int = None) -> bytes:
        """Encode the final image; raises EncodingFailure instead of returning partial data."""
        output_format = (output_format or self.settings.output_format or 'JPEG').upper()
        if output_format == 'JPG':
            output_format = 'JPEG'
        if output_format not in SUPPORTED_OUTPUT_FORMATS:
            raise EncodingFailure(output_format, "unsupported output format")
        quality = self.settings.quality if quality is None else quality

        save_kwargs: Dict[str, Any] = {
            'format': output_format,
            'optimize': self.settings.optimize
        }

        if output_format == 'JPEG':
            save_kwargs.update({
                'quality': quality,
                'progressive': self.settings.progressive
            })
            # Ensure RGB mode for JPEG
            if image.mode != 'RGB':
                image = image.convert('RGB')
        elif output_format == 'WEBP':
            save_kwargs['quality'] = quality
        elif output_format == 'PNG':
            save_kwargs['compress_level'] = 6

        buffer = io.BytesIO()
        try:
            image.save(buffer, **save_kwargs)
        except (OSError, ValueError, KeyError) as e:
            raise EncodingFailure(output_format, str(e) or e.__class__.__name__)

        data = buffer.getvalue()
        if not data:
            raise EncodingFailure(output_format, "encoder produced no data")
        logger.debug(f"Encoded mockup {image.size} as {output_format} ({len(data):,} bytes)")
        return data
