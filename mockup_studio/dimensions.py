"""
Dimension resolver for Mockup Studio.

Converts declared physical sizes (inches or centimeters) into pixel
geometry at a fixed pixels-per-inch assumption, so that artwork, mat
and frame widths all share one consistent scale.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger

from mockup_studio.config import get_config
from mockup_studio.errors import InvalidDimension
from mockup_studio.models import ArtworkDimensions, Orientation, Unit


CM_PER_INCH = 2.54

_UNIT_ALIASES = {
    'in': Unit.INCH,
    'inch': Unit.INCH,
    'inches': Unit.INCH,
    '"': Unit.INCH,
    'cm': Unit.CENTIMETER,
    'centimeter': Unit.CENTIMETER,
    'centimeters': Unit.CENTIMETER,
    'centimetre': Unit.CENTIMETER,
    'centimetres': Unit.CENTIMETER,
}


@dataclass(frozen=True)
class PixelGeometry:
    """Pixel size of an artwork at the resolver's scale"""
    width_px: int
    height_px: int
    px_per_unit: float

    @property
    def size(self):
        return (self.width_px, self.height_px)


def normalize_unit(unit: Any) -> Unit:
    """Return the Unit for a unit name, raising InvalidDimension when unknown"""
    if isinstance(unit, Unit):
        return unit
    key = str(unit).strip().lower() if unit is not None else ''
    if key not in _UNIT_ALIASES:
        raise InvalidDimension(f"unrecognized unit '{unit}'", unit=unit)
    return _UNIT_ALIASES[key]


def _positive_number(value: Any, name: str, dims: ArtworkDimensions = None) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidDimension(f"{name} '{value}' is not a number",
                               width=getattr(dims, 'width', None),
                               height=getattr(dims, 'height', None),
                               unit=getattr(dims, 'unit', None))
    if not math.isfinite(number) or number <= 0:
        raise InvalidDimension(f"{name} must be greater than zero, got {value}",
                               width=getattr(dims, 'width', None),
                               height=getattr(dims, 'height', None),
                               unit=getattr(dims, 'unit', None))
    return number


def parse_dimensions(width: Any, height: Any, unit: Any = 'in') -> ArtworkDimensions:
    """Build ArtworkDimensions from raw form values"""
    w = _positive_number(width, 'width')
    h = _positive_number(height, 'height')
    return ArtworkDimensions(width=w, height=h, unit=normalize_unit(unit).value)


def orientation_for_dimensions(dimensions: ArtworkDimensions) -> Orientation:
    """Classify physical artwork; sides less than 2 units apart count as square"""
    w = float(dimensions.width)
    h = float(dimensions.height)
    if abs(w - h) < 2:
        return Orientation.SQUARE
    return Orientation.LANDSCAPE if w > h else Orientation.PORTRAIT


class DimensionResolver:
    """Physical-to-pixel conversion at a fixed pixels-per-inch"""

    def __init__(self, px_per_inch: Optional[float] = None):
        if px_per_inch is None:
            px_per_inch = get_config().PX_PER_INCH_DEFAULT
        if not px_per_inch or px_per_inch <= 0:
            raise InvalidDimension(f"pixels per inch must be positive, got {px_per_inch}")
        self.px_per_inch = float(px_per_inch)

    def px_per_unit(self, unit: Any) -> float:
        if normalize_unit(unit) == Unit.CENTIMETER:
            return self.px_per_inch / CM_PER_INCH
        return self.px_per_inch

    def resolve(self, dimensions: ArtworkDimensions) -> PixelGeometry:
        """
        Convert declared artwork size to pixels.

        The long side is rounded to the nearest pixel and the short side is
        derived from it using the exact physical ratio, so the pixel aspect
        ratio never drifts more than one pixel from the declared one.
        """
        width = _positive_number(dimensions.width, 'width', dimensions)
        height = _positive_number(dimensions.height, 'height', dimensions)
        ppu = self.px_per_unit(dimensions.unit)

        if width >= height:
            width_px = max(1, int(round(width * ppu)))
            height_px = max(1, int(round(width_px * height / width)))
        else:
            height_px = max(1, int(round(height * ppu)))
            width_px = max(1, int(round(height_px * width / height)))

        geometry = PixelGeometry(width_px=width_px, height_px=height_px, px_per_unit=ppu)
        logger.debug(f"Resolved {width}x{height} {dimensions.unit} -> {width_px}x{height_px}px "
                     f"at {ppu:.3f} px/{dimensions.unit}")
        return geometry

    @staticmethod
    def parse_length(length: Any, name: str = 'border width', unit: Any = None) -> float:
        """Parse a non-negative physical length such as a mat or frame width"""
        try:
            value = float(length)
        except (TypeError, ValueError):
            raise InvalidDimension(f"{name} '{length}' is not a number", unit=unit)
        if not math.isfinite(value) or value < 0:
            raise InvalidDimension(f"{name} must not be negative, got {length}", unit=unit)
        return value

    def length_to_px(self, length: Any, unit: Any = 'in') -> int:
        """Convert a border or mat width to whole pixels"""
        if length is None:
            return 0
        value = self.parse_length(length, unit=unit)
        return int(round(value * self.px_per_unit(unit)))
