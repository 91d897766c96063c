"""
Data model for Mockup Studio.

All entities are request-scoped: created when a request starts,
never mutated afterwards, and discarded once the response is sent.
Transform stages always produce new rasters instead of editing these.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Optional, Tuple, Any

from mockup_studio.errors import UnsupportedFrameStyle, UnsupportedMatOption


class Unit(str, Enum):
    """Physical unit for declared artwork sizes"""
    INCH = "in"
    CENTIMETER = "cm"


class Orientation(str, Enum):
    """Aspect classification of a raster or artwork"""
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    SQUARE = "square"

    @classmethod
    def from_size(cls, width: int, height: int, tolerance: float = 0.02) -> "Orientation":
        """Classify a pixel size; sides within `tolerance` of the long side count as square."""
        long_side = max(width, height)
        if long_side <= 0 or abs(width - height) <= tolerance * long_side:
            return cls.SQUARE
        return cls.LANDSCAPE if width > height else cls.PORTRAIT


class FrameStyle(str, Enum):
    """Closed catalog of frame treatments"""
    NONE = "none"
    THIN_BLACK = "thin-black"
    THIN_WHITE = "thin-white"
    CLASSIC_GOLD = "classic-gold"
    CLASSIC_SILVER = "classic-silver"
    ORNATE_GOLD = "ornate-gold"
    ORNATE_DARK = "ornate-dark"
    NATURAL_OAK = "natural-oak"
    NATURAL_WALNUT = "natural-walnut"
    NATURAL_MAPLE = "natural-maple"
    FLOATING_WHITE = "floating-white"
    FLOATING_BLACK = "floating-black"
    SHADOW_BOX = "shadow-box"
    CANVAS_WRAP = "canvas-wrap"


class MatOption(str, Enum):
    """Closed catalog of mat colors"""
    NONE = "none"
    WHITE = "white"
    CREAM = "cream"
    BLACK = "black"
    GREY = "grey"


class EnvironmentCategory(str, Enum):
    """Room categories used by templates and generated environments"""
    LIVING_ROOM = "living-room"
    BEDROOM = "bedroom"
    OFFICE = "office"
    GALLERY = "gallery"
    CAFE = "cafe"
    RESTAURANT = "restaurant"
    HOTEL = "hotel"
    RETAIL = "retail"
    HALLWAY = "hallway"
    OUTDOOR = "outdoor"
    STUDIO = "studio"
    LIBRARY = "library"
    LOFT = "loft"
    PENTHOUSE = "penthouse"
    AI_SUGGESTED = "ai-suggested"
    CUSTOM = "custom"

    @classmethod
    def normalize(cls, value: Optional[str]) -> "EnvironmentCategory":
        """Map free-form category text onto the catalog, falling back to custom"""
        if not value:
            return cls.CUSTOM
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.CUSTOM


@dataclass(frozen=True)
class ArtworkDimensions:
    """Declared physical size of the artwork"""
    width: float
    height: float
    unit: str = Unit.INCH.value


@dataclass(frozen=True)
class ArtworkAsset:
    """Uploaded artwork bytes plus declared physical size"""
    data: bytes
    dimensions: ArtworkDimensions
    filename: Optional[str] = None


@dataclass(frozen=True)
class FrameSpec:
    """Frame treatment; border_width falls back to the catalog default for the style"""
    style: FrameStyle = FrameStyle.NONE
    border_width: Optional[float] = None
    unit: str = Unit.INCH.value
    color_hint: Optional[str] = None  # '#rrggbb', overrides catalog color
    material: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'style', parse_frame_style(self.style))


@dataclass(frozen=True)
class MatSpec:
    """Mat treatment; width (inches) is ignored when option is none"""
    option: MatOption = MatOption.NONE
    width: float = 2.0

    def __post_init__(self):
        object.__setattr__(self, 'option', parse_mat_option(self.option))

    @property
    def effective_width(self) -> float:
        if self.option == MatOption.NONE:
            return 0.0
        return max(0.0, float(self.width))


@dataclass(frozen=True)
class WallRegion:
    """Declared blank-wall area within an environment raster, in pixels"""
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class EnvironmentAsset:
    """Background raster plus metadata, from a template or a generation call"""
    data: bytes
    name: str = "Custom environment"
    category: EnvironmentCategory = EnvironmentCategory.CUSTOM
    wall_color: Optional[str] = None
    lighting: Optional[str] = None
    mood: Optional[str] = None
    room_type: Optional[str] = None
    tags: Tuple[str, ...] = ()
    orientation: Optional[Orientation] = None
    wall_region: Optional[WallRegion] = None
    prompt: Optional[str] = None
    source: str = "upload"  # template, generated or upload
    environment_id: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[bytes] = None  # JPEG preview, generated environments only

    def metadata(self) -> Dict[str, Any]:
        """Metadata without the raster payload"""
        return {
            'environment_id': self.environment_id,
            'name': self.name,
            'category': self.category.value,
            'wall_color': self.wall_color,
            'lighting': self.lighting,
            'mood': self.mood,
            'room_type': self.room_type,
            'tags': list(self.tags),
            'orientation': self.orientation.value if self.orientation else None,
            'wall_region': asdict(self.wall_region) if self.wall_region else None,
            'prompt': self.prompt,
            'description': self.description,
            'source': self.source,
        }


@dataclass(frozen=True)
class CompositeRequest:
    """Everything one mockup needs"""
    artwork: ArtworkAsset
    environment: EnvironmentAsset
    frame: FrameSpec = field(default_factory=FrameSpec)
    mat: MatSpec = field(default_factory=MatSpec)
    output_format: Optional[str] = None  # falls back to OUTPUT_FORMAT
    quality: Optional[int] = None  # falls back to OUTPUT_QUALITY
    request_id: Optional[str] = None


@dataclass(frozen=True)
class PlacementRect:
    """Target pixel region of the framed artwork within the environment raster"""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class MockupResult:
    """Encoded mockup plus the placement used, for auditing"""
    image_bytes: bytes
    output_format: str
    size: Tuple[int, int]
    placement: PlacementRect
    framed_size: Tuple[int, int]
    request_id: Optional[str] = None

    @property
    def mime_type(self) -> str:
        return {
            'JPEG': 'image/jpeg',
            'PNG': 'image/png',
            'WEBP': 'image/webp',
        }.get(self.output_format.upper(), 'application/octet-stream')

    def summary(self) -> Dict[str, Any]:
        return {
            'request_id': self.request_id,
            'output_format': self.output_format,
            'size': list(self.size),
            'placement': self.placement.to_dict(),
            'framed_size': list(self.framed_size),
            'bytes': len(self.image_bytes),
        }


def parse_frame_style(value: Any) -> FrameStyle:
    """Parse a frame style name, raising UnsupportedFrameStyle for unknown values"""
    if isinstance(value, FrameStyle):
        return value
    try:
        return FrameStyle(str(value).strip().lower())
    except ValueError:
        raise UnsupportedFrameStyle(value)


def parse_mat_option(value: Any) -> MatOption:
    """Parse a mat option name, raising UnsupportedMatOption for unknown values"""
    if isinstance(value, MatOption):
        return value
    text = str(value).strip().lower()
    if text == "gray":
        text = "grey"
    try:
        return MatOption(text)
    except ValueError:
        raise UnsupportedMatOption(value)
