"""
Raster loading for Mockup Studio.

This module handles:
- Decoding uploaded artwork and environment bytes (PNG, JPEG, WebP)
- Applying EXIF orientation and flattening transparency
- Cropping and scaling artwork to the resolved pixel geometry
- Cover-fit JPEG thumbnails for generated environments
"""

import io
from typing import Iterable, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError
from loguru import logger

from mockup_studio.config import get_config
from mockup_studio.errors import AssetDecodeFailure
from mockup_studio.models import ArtworkAsset, EnvironmentAsset


def decode_image(data: bytes, asset_name: str,
                 allowed_formats: Optional[Iterable[str]] = None) -> Image.Image:
    """Decode raw bytes into a fully loaded PIL image."""
    if not data:
        raise AssetDecodeFailure(asset_name, "no image data received")

    if allowed_formats is None:
        allowed_formats = get_config().ALLOWED_INPUT_FORMATS
    allowed = {fmt.upper() for fmt in allowed_formats}

    try:
        image = Image.open(io.BytesIO(data))
        detected = (image.format or '').upper()
        if detected not in allowed:
            raise AssetDecodeFailure(asset_name, f"format {detected or 'unknown'} is not supported",
                                     detected_format=detected or None)
        image.load()
    except AssetDecodeFailure:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise AssetDecodeFailure(asset_name, str(e) or e.__class__.__name__)

    logger.debug(f"Decoded {asset_name}: {detected} {image.size} {image.mode}")
    return image


def to_rgb(image: Image.Image, background: Tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
    """Apply EXIF orientation and flatten any transparency onto a solid background."""
    image = ImageOps.exif_transpose(image)
    if image.mode in ('RGBA', 'LA') or (image.mode == 'P' and 'transparency' in image.info):
        rgba = image.convert('RGBA')
        flattened = Image.new('RGB', rgba.size, background)
        flattened.paste(rgba, mask=rgba.split()[-1])
        return flattened
    return image.convert('RGB')


def load_artwork(asset: ArtworkAsset) -> Image.Image:
    """Decode artwork bytes into an RGB raster."""
    return to_rgb(decode_image(asset.data, asset.filename or 'artwork'))


def load_environment(asset: EnvironmentAsset) -> Image.Image:
    """Decode environment bytes into an RGB raster."""
    return to_rgb(decode_image(asset.data, f"environment '{asset.name}'"))


def crop_to_aspect_ratio(image: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """
    Crop image to target aspect ratio using center crop
    Returns cropped PIL Image
    """
    current_width, current_height = image.size
    target_ratio = target_width / target_height
    current_ratio = current_width / current_height

    if abs(current_ratio - target_ratio) < 0.005:
        # Already close enough to target ratio
        return image

    if current_ratio > target_ratio:
        # Image is too wide - crop left and right
        new_width = max(1, int(round(current_height * target_ratio)))
        left = (current_width - new_width) // 2
        return image.crop((left, 0, left + new_width, current_height))
    else:
        # Image is too tall - crop top and bottom
        new_height = max(1, int(round(current_width / target_ratio)))
        top = (current_height - new_height) // 2
        return image.crop((0, top, current_width, top + new_height))


def fit_artwork(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Center-crop the artwork to the declared aspect ratio and scale it to `size`."""
    target_width, target_height = size
    cropped = crop_to_aspect_ratio(image, target_width, target_height)
    if cropped.size == (target_width, target_height):
        return cropped.copy()
    scaled = cropped.resize((target_width, target_height), Image.Resampling.LANCZOS)
    logger.debug(f"Fitted artwork {image.size} -> {cropped.size} -> {scaled.size}")
    return scaled


def create_thumbnail(image: Image.Image, size: Tuple[int, int] = (400, 300), quality: int = 80) -> bytes:
    """Cover-fit JPEG preview of an environment raster."""
    thumb = ImageOps.fit(image.convert('RGB'), tuple(size), Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    thumb.save(buffer, format='JPEG', quality=quality, optimize=True)
    return buffer.getvalue()
