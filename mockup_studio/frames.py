"""
Frame and mat rendering for Mockup Studio.

This module handles:
- The frame catalog (family, colors and default border width per style)
- Rendering a solid mat around the artwork with a bevel-cut core line
- Painting the frame band per family: flat, metallic, ornate, wood,
  floating (drop shadow only) and shadow box
- Keeping the outer size exactly artwork + 2 x mat + 2 x frame

Every painter is deterministic: identical inputs give identical pixels.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFilter
from loguru import logger

from mockup_studio.dimensions import DimensionResolver
from mockup_studio.errors import UnsupportedFrameStyle, UnsupportedMatOption
from mockup_studio.models import FrameSpec, FrameStyle, MatOption, MatSpec


RGB = Tuple[int, int, int]


class FrameFamily(str, Enum):
    BARE = "bare"
    FLAT = "flat"
    METALLIC = "metallic"
    ORNATE = "ornate"
    WOOD = "wood"
    FLOATING = "floating"
    SHADOW_BOX = "shadow_box"


@dataclass(frozen=True)
class FrameStyleInfo:
    """Catalog entry for one frame style"""
    family: FrameFamily
    color: Optional[RGB]
    accent: Optional[RGB]
    default_width_in: float
    shadow_alpha: float = 0.0


# FRAME CATALOG - default border widths are in inches
FRAME_CATALOG: Dict[FrameStyle, FrameStyleInfo] = {
    FrameStyle.NONE: FrameStyleInfo(FrameFamily.BARE, None, None, 0.0),
    FrameStyle.CANVAS_WRAP: FrameStyleInfo(FrameFamily.BARE, None, None, 0.0),
    FrameStyle.THIN_BLACK: FrameStyleInfo(FrameFamily.FLAT, (20, 20, 20), None, 0.75),
    FrameStyle.THIN_WHITE: FrameStyleInfo(FrameFamily.FLAT, (244, 243, 239), None, 0.75),
    FrameStyle.CLASSIC_GOLD: FrameStyleInfo(FrameFamily.METALLIC, (205, 165, 80), (150, 110, 40), 1.5),
    FrameStyle.CLASSIC_SILVER: FrameStyleInfo(FrameFamily.METALLIC, (196, 198, 202), (130, 132, 138), 1.5),
    FrameStyle.ORNATE_GOLD: FrameStyleInfo(FrameFamily.ORNATE, (190, 142, 52), (120, 84, 24), 2.5),
    FrameStyle.ORNATE_DARK: FrameStyleInfo(FrameFamily.ORNATE, (70, 50, 36), (35, 24, 16), 2.5),
    FrameStyle.NATURAL_OAK: FrameStyleInfo(FrameFamily.WOOD, (196, 156, 104), (146, 104, 60), 1.25),
    FrameStyle.NATURAL_WALNUT: FrameStyleInfo(FrameFamily.WOOD, (110, 74, 48), (64, 40, 24), 1.25),
    FrameStyle.NATURAL_MAPLE: FrameStyleInfo(FrameFamily.WOOD, (228, 203, 163), (192, 160, 114), 1.25),
    FrameStyle.FLOATING_WHITE: FrameStyleInfo(FrameFamily.FLOATING, (244, 243, 239), None, 1.0, shadow_alpha=0.35),
    FrameStyle.FLOATING_BLACK: FrameStyleInfo(FrameFamily.FLOATING, (20, 20, 20), None, 1.0, shadow_alpha=0.55),
    FrameStyle.SHADOW_BOX: FrameStyleInfo(FrameFamily.SHADOW_BOX, (38, 36, 34), (18, 17, 16), 1.75),
}

MAT_COLORS: Dict[MatOption, RGB] = {
    MatOption.WHITE: (250, 250, 247),
    MatOption.CREAM: (243, 234, 214),
    MatOption.BLACK: (24, 24, 24),
    MatOption.GREY: (150, 150, 150),
}

MAT_CORE_COLOR: RGB = (252, 251, 248)

# Side indices used by the band geometry
SIDE_TOP, SIDE_RIGHT, SIDE_BOTTOM, SIDE_LEFT = 0, 1, 2, 3

# Light falls from the top-left: lit sides brighten, shaded sides darken
SIDE_LIGHT = np.array([0.16, -0.10, -0.18, 0.08], dtype=np.float32)

_HEX_COLOR = re.compile(r'^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


@dataclass(frozen=True)
class FramedArtwork:
    """Flattened frame + mat + artwork raster"""
    image: Image.Image
    artwork_box: Tuple[int, int, int, int]  # (x, y, width, height) of the artwork inside
    mat_px: int
    frame_px: int

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size


def parse_color_hint(hint: str, style: FrameStyle) -> RGB:
    """Parse '#rrggbb' or '#rgb' into an RGB tuple"""
    match = _HEX_COLOR.match(hint.strip())
    if not match:
        raise UnsupportedFrameStyle(style.value, reason=f"invalid color hint '{hint}'")
    digits = match.group(1)
    if len(digits) == 3:
        digits = ''.join(ch * 2 for ch in digits)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def _band_geometry(width: int, height: int, border: int):
    """
    Per-pixel geometry of a rectangular frame band.

    Returns (side, dist, t, along): the mitred side each pixel belongs to,
    its distance in px from the outer edge, the normalized depth across the
    band (0 at the outer edge, 1 at the opening) and the coordinate running
    along the rail.
    """
    ys = np.arange(height, dtype=np.int32)[:, None]
    xs = np.arange(width, dtype=np.int32)[None, :]
    distances = np.stack(np.broadcast_arrays(ys, width - 1 - xs, height - 1 - ys, xs))
    side = np.argmin(distances, axis=0)
    dist = np.min(distances, axis=0).astype(np.float32)
    t = np.clip((dist + 0.5) / float(border), 0.0, 1.0)
    horizontal_rail = (side == SIDE_TOP) | (side == SIDE_BOTTOM)
    along = np.where(horizontal_rail, xs, ys).astype(np.float32)
    return side, dist, t, along


def _shade(base: RGB, factor: np.ndarray, highlight: Optional[np.ndarray] = None) -> np.ndarray:
    rgb = np.asarray(base, dtype=np.float32)[None, None, :] * factor[..., None]
    if highlight is not None:
        rgb = rgb + (255.0 - rgb) * np.clip(highlight, 0.0, 1.0)[..., None]
    return np.clip(np.rint(rgb), 0, 255).astype(np.uint8)


def _inner_lip(factor: np.ndarray, dist: np.ndarray, border: int, strength: float = 0.6) -> np.ndarray:
    return np.where(dist >= border - 1, factor * strength, factor)


def _lip_strength(color: RGB) -> float:
    # Dark frames need a lighter lip to read at all
    luminance = 0.299 * color[0] + 0.587 * color[1] + 0.114 * color[2]
    return 0.7 if luminance > 60 else 1.8


def _paint_flat(size, border, color, accent, info) -> Image.Image:
    width, height = size
    _, dist, _, _ = _band_geometry(width, height, border)
    factor = _inner_lip(np.ones_like(dist), dist, border, _lip_strength(color))
    return Image.fromarray(_shade(color, factor), 'RGB')


def _paint_metallic(size, border, color, accent, info) -> Image.Image:
    width, height = size
    side, dist, t, _ = _band_geometry(width, height, border)
    lit_side = (side == SIDE_TOP) | (side == SIDE_LEFT)

    profile = 0.80 + 0.30 * np.sin(np.pi * t)
    factor = profile + SIDE_LIGHT[side] * (1.0 - 0.5 * t)
    factor = np.where(dist < 1, factor * 0.75, factor)
    factor = _inner_lip(factor, dist, border)

    sheen = np.where(lit_side, 0.45, 0.15) * np.exp(-((t - 0.32) / 0.07) ** 2)
    return Image.fromarray(_shade(color, factor, sheen), 'RGB')


def _paint_ornate(size, border, color, accent, info) -> Image.Image:
    width, height = size
    side, dist, t, along = _band_geometry(width, height, border)
    lit_side = (side == SIDE_TOP) | (side == SIDE_LEFT)

    profile = 0.72 + 0.30 * np.sin(np.pi * t) + 0.12 * np.cos(6.0 * np.pi * t)
    bead_period = max(4.0, border * 0.35)
    bead_band = (t > 0.42) & (t < 0.62)
    beads = np.where(bead_band, 0.10 * np.cos(2.0 * np.pi * along / bead_period), 0.0)
    factor = profile + beads + SIDE_LIGHT[side] * (1.0 - 0.4 * t)
    factor = np.where(dist < 1, factor * 0.7, factor)
    factor = _inner_lip(factor, dist, border, 0.5)

    ridge_light = np.where(lit_side, 1.0, 0.4)
    sheen = ridge_light * (0.30 * np.exp(-((t - 0.18) / 0.05) ** 2)
                           + 0.25 * np.exp(-((t - 0.52) / 0.05) ** 2))
    return Image.fromarray(_shade(color, factor, sheen), 'RGB')


def _paint_wood(size, border, color, accent, info) -> Image.Image:
    width, height = size
    side, dist, t, along = _band_geometry(width, height, border)
    dark = accent or tuple(int(c * 0.7) for c in color)

    period = max(3.0, border / 3.5)
    # Each rail gets its own phase so the mitre seams read as separate boards
    wave = 2.5 * np.sin(2.0 * np.pi * along / 173.0) + 1.2 * np.sin(2.0 * np.pi * along / 47.0 + side)
    grain = (0.5 + 0.5 * np.sin(2.0 * np.pi * (dist + wave) / period)) ** 3
    pores = 0.08 * (0.5 + 0.5 * np.sin(2.0 * np.pi * along / 23.0 + 1.7 * side))
    mix = np.clip(0.55 * grain + pores, 0.0, 1.0)[..., None]

    light_rgb = np.asarray(color, dtype=np.float32)
    dark_rgb = np.asarray(dark, dtype=np.float32)
    wood = light_rgb * (1.0 - mix) + dark_rgb * mix

    factor = 0.92 + 0.10 * np.sin(np.pi * t) + 0.5 * SIDE_LIGHT[side]
    factor = _inner_lip(factor, dist, border, 0.65)
    rgb = np.clip(np.rint(wood * factor[..., None]), 0, 255).astype(np.uint8)
    return Image.fromarray(rgb, 'RGB')


def _paint_floating(size, border, color, accent, info) -> Image.Image:
    """Transparent band carrying only a soft drop shadow of the mounted piece."""
    width, height = size
    offset_x = int(round(border * 0.15))
    offset_y = int(round(border * 0.30))
    radius = max(1.0, border * 0.25)

    mask = Image.new('L', size, 0)
    draw = ImageDraw.Draw(mask)
    draw.rectangle(
        [border + offset_x, border + offset_y, width - border - 1 + offset_x, height - border - 1 + offset_y],
        fill=int(round(255 * info.shadow_alpha))
    )
    mask = mask.filter(ImageFilter.GaussianBlur(radius))

    shadow = Image.new('RGBA', size, (0, 0, 0, 0))
    shadow.putalpha(mask)
    return shadow


def _paint_shadow_box(size, border, color, accent, info) -> Image.Image:
    width, height = size
    side, dist, t, _ = _band_geometry(width, height, border)
    face = max(1, int(round(border * 0.12)))

    factor = (1.0 - 0.5 * t ** 2) + 0.5 * SIDE_LIGHT[side]
    factor = np.where(dist < face, factor * 1.15, factor)
    factor = _inner_lip(factor, dist, border, _lip_strength(color))
    return Image.fromarray(_shade(color, factor), 'RGB')


FramePainter = Callable[[Tuple[int, int], int, RGB, Optional[RGB], FrameStyleInfo], Image.Image]

_PAINTERS: Dict[FrameFamily, FramePainter] = {
    FrameFamily.FLAT: _paint_flat,
    FrameFamily.METALLIC: _paint_metallic,
    FrameFamily.ORNATE: _paint_ornate,
    FrameFamily.WOOD: _paint_wood,
    FrameFamily.FLOATING: _paint_floating,
    FrameFamily.SHADOW_BOX: _paint_shadow_box,
}


class FrameRenderer:
    """Builds the framed-artwork raster from artwork, FrameSpec and MatSpec"""

    def __init__(self, resolver: DimensionResolver = None):
        self.resolver = resolver or DimensionResolver()

    def style_info(self, style: FrameStyle) -> FrameStyleInfo:
        info = FRAME_CATALOG.get(style)
        if info is None:
            raise UnsupportedFrameStyle(style)
        return info

    def frame_width_px(self, frame_spec: FrameSpec) -> int:
        info = self.style_info(frame_spec.style)
        if info.family == FrameFamily.BARE:
            return 0
        width = frame_spec.border_width if frame_spec.border_width is not None else info.default_width_in
        return self.resolver.length_to_px(width, frame_spec.unit)

    def mat_width_px(self, mat_spec: MatSpec) -> int:
        if mat_spec.option == MatOption.NONE:
            return 0
        if mat_spec.option not in MAT_COLORS:
            raise UnsupportedMatOption(mat_spec.option)
        return self.resolver.length_to_px(mat_spec.effective_width, 'in')

    def render(self, artwork: Image.Image, frame_spec: FrameSpec, mat_spec: MatSpec) -> FramedArtwork:
        """
        Surround the artwork with its mat, then the frame.

        Args:
            artwork: RGB artwork raster, already at resolved pixel size
            frame_spec: frame treatment
            mat_spec: mat treatment

        Returns:
            FramedArtwork whose outer size is artwork + 2 x mat px + 2 x frame px
        """
        info = self.style_info(frame_spec.style)
        mat_px = self.mat_width_px(mat_spec)
        frame_px = self.frame_width_px(frame_spec)
        art_w, art_h = artwork.size

        if mat_px == 0 and frame_px == 0:
            logger.debug(f"No frame or mat for {frame_spec.style.value}/{mat_spec.option.value}, "
                         f"artwork passes through at {artwork.size}")
            return FramedArtwork(artwork.copy(), (0, 0, art_w, art_h), 0, 0)

        inner = artwork
        if mat_px > 0:
            inner = self._render_mat(artwork, mat_px, MAT_COLORS[mat_spec.option])

        if frame_px == 0:
            result = inner
        else:
            color = info.color
            if frame_spec.color_hint:
                color = parse_color_hint(frame_spec.color_hint, frame_spec.style)
            result = self._render_frame(inner, frame_px, info, color)

        offset = mat_px + frame_px
        logger.debug(f"Rendered {frame_spec.style.value} frame ({frame_px}px) with "
                     f"{mat_spec.option.value} mat ({mat_px}px): {artwork.size} -> {result.size}")
        return FramedArtwork(result, (offset, offset, art_w, art_h), mat_px, frame_px)

    def _render_mat(self, artwork: Image.Image, mat_px: int, color: RGB) -> Image.Image:
        art_w, art_h = artwork.size
        mat = Image.new('RGB', (art_w + 2 * mat_px, art_h + 2 * mat_px), color)

        # Bevel-cut core shows as a thin light line around the opening
        core_px = max(1, mat_px // 40) if mat_px >= 4 else 0
        if core_px:
            draw = ImageDraw.Draw(mat)
            for i in range(1, core_px + 1):
                draw.rectangle(
                    [mat_px - i, mat_px - i, mat_px + art_w - 1 + i, mat_px + art_h - 1 + i],
                    outline=MAT_CORE_COLOR
                )

        mat.paste(artwork, (mat_px, mat_px))
        return mat

    def _render_frame(self, inner: Image.Image, frame_px: int, info: FrameStyleInfo, color: RGB) -> Image.Image:
        painter = _PAINTERS.get(info.family)
        if painter is None:
            raise UnsupportedFrameStyle(info.family.value, reason="no painter for frame family")

        outer_size = (inner.width + 2 * frame_px, inner.height + 2 * frame_px)
        framed = painter(outer_size, frame_px, color, info.accent, info)
        framed.paste(inner, (frame_px, frame_px))
        return framed
