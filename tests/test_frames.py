"""
Unit tests for the frame and mat renderer.
"""

import numpy as np
import pytest
from PIL import Image

from mockup_studio.dimensions import DimensionResolver
from mockup_studio.errors import UnsupportedFrameStyle, UnsupportedMatOption
from mockup_studio.frames import (
    FRAME_CATALOG, MAT_COLORS, FrameFamily, FrameRenderer, parse_color_hint
)
from mockup_studio.models import FrameSpec, FrameStyle, MatOption, MatSpec


@pytest.fixture
def renderer():
    return FrameRenderer(DimensionResolver(px_per_inch=40))


@pytest.fixture
def artwork():
    """Small 120x80 artwork with a vertical gradient."""
    ramp = np.linspace(0, 255, 80, dtype=np.uint8)[:, None]
    rgb = np.stack(np.broadcast_arrays(ramp, np.full((80, 120), 90, np.uint8), 255 - ramp), axis=-1)
    return Image.fromarray(rgb.astype(np.uint8), 'RGB')


class TestFrameCatalog:
    """Test the closed frame catalog."""

    def test_every_style_is_cataloged(self):
        assert set(FRAME_CATALOG) == set(FrameStyle)

    def test_every_mat_option_has_a_color(self):
        assert set(MAT_COLORS) == set(MatOption) - {MatOption.NONE}

    def test_classic_styles_are_metallic(self):
        assert FRAME_CATALOG[FrameStyle.CLASSIC_GOLD].family == FrameFamily.METALLIC
        assert FRAME_CATALOG[FrameStyle.CLASSIC_SILVER].family == FrameFamily.METALLIC


class TestFrameRenderer:
    """Test frame and mat rendering."""

    def test_no_frame_no_mat_is_pixel_identical(self, renderer, artwork):
        result = renderer.render(artwork, FrameSpec(), MatSpec())

        assert result.size == artwork.size
        assert result.image is not artwork
        assert np.array_equal(np.asarray(result.image), np.asarray(artwork))
        assert result.mat_px == 0 and result.frame_px == 0

    def test_canvas_wrap_adds_no_border(self, renderer, artwork):
        result = renderer.render(artwork, FrameSpec(FrameStyle.CANVAS_WRAP), MatSpec())

        assert np.array_equal(np.asarray(result.image), np.asarray(artwork))

    @pytest.mark.parametrize("style", list(FrameStyle))
    @pytest.mark.parametrize("mat", [MatSpec(), MatSpec(MatOption.WHITE, 1.0)])
    def test_outer_size_is_exact(self, renderer, artwork, style, mat):
        """Outer size = artwork + 2 x mat px + 2 x frame px for every style."""
        frame = FrameSpec(style)
        result = renderer.render(artwork, frame, mat)

        mat_px = renderer.mat_width_px(mat)
        frame_px = renderer.frame_width_px(frame)
        assert result.size == (artwork.width + 2 * mat_px + 2 * frame_px,
                               artwork.height + 2 * mat_px + 2 * frame_px)
        assert result.artwork_box == (mat_px + frame_px, mat_px + frame_px, artwork.width, artwork.height)

    @pytest.mark.parametrize("style", list(FrameStyle))
    def test_only_floating_frames_are_transparent(self, renderer, artwork, style):
        result = renderer.render(artwork, FrameSpec(style), MatSpec(MatOption.CREAM))

        expected = 'RGBA' if FRAME_CATALOG[style].family == FrameFamily.FLOATING else 'RGB'
        assert result.image.mode == expected

    def test_explicit_border_width_uses_artwork_unit(self, renderer, artwork):
        inches = renderer.render(artwork, FrameSpec(FrameStyle.THIN_BLACK, border_width=1, unit='in'), MatSpec())
        centimeters = renderer.render(artwork, FrameSpec(FrameStyle.THIN_BLACK, border_width=2.54, unit='cm'),
                                      MatSpec())

        assert inches.frame_px == centimeters.frame_px == 40

    def test_artwork_is_untouched_inside_frame_and_mat(self, renderer, artwork):
        result = renderer.render(artwork, FrameSpec(FrameStyle.NATURAL_OAK), MatSpec(MatOption.BLACK, 2.0))

        x, y, w, h = result.artwork_box
        inner = result.image.crop((x, y, x + w, y + h))
        assert np.array_equal(np.asarray(inner), np.asarray(artwork))

    def test_mat_color_visible_around_artwork(self, renderer, artwork):
        result = renderer.render(artwork, FrameSpec(FrameStyle.THIN_BLACK), MatSpec(MatOption.WHITE, 2.0))

        # Midway across the left mat, away from the bevel line
        pixel = result.image.getpixel((result.frame_px + result.mat_px // 2, result.size[1] // 2))
        assert pixel == MAT_COLORS[MatOption.WHITE]

    def test_thin_black_band_is_dark(self, renderer, artwork):
        result = renderer.render(artwork, FrameSpec(FrameStyle.THIN_BLACK), MatSpec())

        r, g, b = result.image.getpixel((result.frame_px // 2, result.size[1] // 2))
        assert max(r, g, b) < 60

    def test_gold_band_is_warm(self, renderer, artwork):
        result = renderer.render(artwork, FrameSpec(FrameStyle.CLASSIC_GOLD), MatSpec())

        r, g, b = result.image.getpixel((result.frame_px // 2, result.size[1] // 2))
        assert r > b + 60

    def test_color_hint_overrides_catalog_color(self, renderer, artwork):
        result = renderer.render(artwork, FrameSpec(FrameStyle.THIN_WHITE, color_hint='#ff0000'), MatSpec())

        r, g, b = result.image.getpixel((result.frame_px // 2, result.size[1] // 2))
        assert r > 200 and g < 30 and b < 30

    @pytest.mark.parametrize("style", list(FrameStyle))
    def test_rendering_is_deterministic(self, renderer, artwork, style):
        first = renderer.render(artwork, FrameSpec(style), MatSpec(MatOption.GREY, 1.5))
        second = renderer.render(artwork, FrameSpec(style), MatSpec(MatOption.GREY, 1.5))

        assert np.array_equal(np.asarray(first.image), np.asarray(second.image))

    def test_unknown_frame_style_raises(self, renderer, artwork):
        with pytest.raises(UnsupportedFrameStyle):
            renderer.render(artwork, FrameSpec(style="gold-leaf"), MatSpec())

    def test_unknown_mat_option_raises(self, renderer, artwork):
        with pytest.raises(UnsupportedMatOption):
            renderer.render(artwork, FrameSpec(), MatSpec(option="sparkle"))

    def test_style_and_option_names_are_coerced(self, renderer, artwork):
        frame = FrameSpec(style="Classic-Gold", border_width=0.5)
        mat = MatSpec(option="gray", width=0.5)

        assert frame.style is FrameStyle.CLASSIC_GOLD
        assert mat.option is MatOption.GREY
        assert renderer.render(artwork, frame, mat).size == (120 + 80, 80 + 80)

    def test_invalid_color_hint_raises(self):
        with pytest.raises(UnsupportedFrameStyle):
            parse_color_hint('not-a-color', FrameStyle.THIN_BLACK)

    def test_short_hex_color_hint(self):
        assert parse_color_hint('#abc', FrameStyle.THIN_BLACK) == (0xaa, 0xbb, 0xcc)
