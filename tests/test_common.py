"""Tests for reelkit.common utilities."""

import pytest

from reelkit.common import (
    load_font,
    parse_css_color,
    parse_hex_color,
    parse_text_shadow,
    resolve_path_vars,
    round_half_up,
    round_time,
)


class TestRounding:
    def test_half_rounds_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(1.5) == 2
        assert round_half_up(2.5) == 3  # round() would give 2

    def test_one_decimal(self):
        assert round_half_up(5.2, 1) == pytest.approx(5.2)
        assert round_half_up(4.666, 1) == pytest.approx(4.7)
        assert round_half_up(1.25, 1) == pytest.approx(1.3)

    def test_round_time_millisecond(self):
        assert round_time(7.2000000001) == 7.2
        assert round_time(0.1 + 0.2) == 0.3


class TestParseHexColor:
    def test_with_hash(self):
        assert parse_hex_color("#FF8000") == (255, 128, 0)

    def test_without_hash(self):
        assert parse_hex_color("00ff00") == (0, 255, 0)

    def test_invalid_length(self):
        with pytest.raises(ValueError, match="Invalid hex color"):
            parse_hex_color("#FFF")


class TestParseCssColor:
    def test_hex_is_opaque(self):
        assert parse_css_color("#FFFFFF") == (255, 255, 255, 255)

    def test_rgba(self):
        assert parse_css_color("rgba(0,0,0,0.5)") == (0, 0, 0, 128)

    def test_rgb_with_spaces(self):
        assert parse_css_color("rgb( 10, 20, 30 )") == (10, 20, 30, 255)

    def test_alpha_clamped(self):
        assert parse_css_color("rgba(1,2,3,2)")[3] == 255


class TestParseTextShadow:
    def test_rgba_shadow(self):
        dx, dy, color = parse_text_shadow("2px 2px 6px rgba(0,0,0,0.9)")
        assert (dx, dy) == (2, 2)
        assert color[:3] == (0, 0, 0)
        assert color[3] in (229, 230)

    def test_hex_shadow(self):
        dx, dy, color = parse_text_shadow("-1px 3px #112233")
        assert (dx, dy) == (-1, 3)
        assert color == (0x11, 0x22, 0x33, 255)

    def test_defaults_to_black(self):
        _, _, color = parse_text_shadow("1px 1px")
        assert color == (0, 0, 0, 255)

    def test_missing_offsets(self):
        with pytest.raises(ValueError, match="Invalid text shadow"):
            parse_text_shadow("rgba(0,0,0,1)")


class TestResolvePathVars:
    def test_substitutes(self):
        assert resolve_path_vars("${clips}/a.mp4", {"clips": "/data"}) == "/data/a.mp4"

    def test_no_vars_untouched(self):
        assert resolve_path_vars("/abs/a.mp4", {}) == "/abs/a.mp4"

    def test_unknown_var(self):
        with pytest.raises(ValueError, match="Unknown path variable"):
            resolve_path_vars("${missing}/a.mp4", {})


class TestLoadFont:
    def test_unknown_family_falls_back(self):
        font = load_font(20, "NoSuchFamilyAnywhere", "800")
        # Any usable font object: DejaVu or Pillow's default.
        assert font.getbbox("Hi")[2] > 0
