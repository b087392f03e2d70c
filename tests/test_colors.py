"""Tests for color parsing, hex conversion and white blending."""

from __future__ import annotations

import pytest

from mapshade.colors import blend_over_white, hex_to_rgb, parse_color, rgb_to_hex
from mapshade.errors import BadColorValueError


class TestHexConversion:
    def test_hex_to_rgb(self):
        assert hex_to_rgb("155083") == (0x15, 0x50, 0x83)

    def test_hex_is_case_insensitive(self):
        assert hex_to_rgb("F0C0D9") == hex_to_rgb("f0c0d9") == (240, 192, 217)

    def test_rgb_to_hex_pads_channels(self):
        assert rgb_to_hex(240, 192, 217) == "f0c0d9"
        assert rgb_to_hex(1, 2, 3) == "010203"

    def test_rgb_to_hex_clamps_out_of_range(self):
        assert rgb_to_hex(-5, 300, 16) == "00ff10"

    @pytest.mark.parametrize("rgb", [(0, 0, 0), (255, 255, 255), (21, 80, 131), (9, 10, 250)])
    def test_round_trip(self, rgb):
        assert hex_to_rgb(rgb_to_hex(*rgb)) == rgb

    @pytest.mark.parametrize("value", ["15508", "1550833", "zz5083", "#155083", "", "155083\n"])
    def test_invalid_hex(self, value):
        with pytest.raises(BadColorValueError):
            hex_to_rgb(value)


class TestParseColor:
    def test_accepts_hex_string(self):
        assert parse_color("666666") == (102, 102, 102)

    def test_accepts_sequence(self):
        assert parse_color([10, 20, 30]) == (10, 20, 30)
        assert parse_color((10.0, 20, 30)) == (10, 20, 30)

    @pytest.mark.parametrize(
        "value",
        [[1, 2], [1, 2, 3, 4], [1, 2, 256], [-1, 0, 0], ["a", 0, 0], None, 155083],
    )
    def test_rejects_malformed(self, value):
        with pytest.raises(BadColorValueError):
            parse_color(value)

    def test_error_is_also_value_error(self):
        with pytest.raises(ValueError):
            parse_color("nothex")


class TestBlend:
    def test_full_opacity_is_color(self):
        assert blend_over_white((21, 80, 131), 1.0) == (21, 80, 131)

    def test_zero_opacity_is_white(self):
        assert blend_over_white((21, 80, 131), 0.0) == (255, 255, 255)

    def test_channels_are_truncated(self):
        assert blend_over_white((240, 192, 217), 0.25) == (251, 239, 245)

    def test_pct_above_one_is_clamped(self):
        assert blend_over_white((21, 80, 131), 1.5) == (21, 80, 131)
