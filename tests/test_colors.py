"""
色リテラルの解析・正規化、LAB変換、WCAGコントラストのテスト
"""

import numpy as np
import pytest
import tinycss2

from brandtheme.colors import (
    HexLiteral,
    HslLiteral,
    RgbLiteral,
    contrast_ratio,
    delta_e,
    find_color_literals,
    hex_to_lab,
    is_light_color,
    lab_to_hex,
    literal_from_token,
    meets_wcag_aa,
    meets_wcag_aaa,
    normalize_color,
    parse_color_literal,
    relative_luminance,
    rgb_to_lab,
    saturation,
)


# ============================================================================
# Literals
# ============================================================================

class TestParseColorLiteral:

    def test_kinds(self):
        assert isinstance(parse_color_literal("#abc"), HexLiteral)
        assert isinstance(parse_color_literal("rgba(1, 2, 3, .5)"), RgbLiteral)
        assert isinstance(parse_color_literal("hsl(10, 50%, 50%)"), HslLiteral)
        assert parse_color_literal("#abc").kind == "hex"
        assert parse_color_literal("rgb(0,0,0)").kind == "rgb"
        assert parse_color_literal("hsl(0,0%,0%)").kind == "hsl"

    @pytest.mark.parametrize("value", ["red", "#ggg", "rgb(1,2)", "var(--x)", "", "url(#abc)"])
    def test_unsupported_values(self, value):
        assert parse_color_literal(value) is None

    def test_hex_alpha(self):
        assert parse_color_literal("#ff000080").alpha == pytest.approx(128 / 255)
        assert parse_color_literal("#f008").alpha == pytest.approx(136 / 255)
        assert parse_color_literal("#ff0000").alpha == 1.0

    def test_from_token(self):
        token = tinycss2.parse_one_component_value("RGB(26, 115, 232)")
        literal = literal_from_token(token)
        assert literal.kind == "rgb"
        assert literal.to_rgb() == (26, 115, 232)


class TestNormalizeColor:

    @pytest.mark.parametrize("value,expected", [
        ("#ABC", "#aabbcc"),
        ("#1A73E8", "#1a73e8"),
        ("#ff000080", "#ff0000"),
        ("rgb(255, 0, 0)", "#ff0000"),
        ("RGBA(26,115,232,0.9)", "#1a73e8"),
        ("rgb(100%, 0%, 0%)", "#ff0000"),
        ("rgb(300, -5, 0)", "#ff0000"),
        ("hsl(0, 100%, 50%)", "#ff0000"),
        ("hsl(120, 100%, 25%)", "#008000"),
        ("hsla(180, 100%, 50%, 1)", "#00ffff"),
        ("hsl(0, 0%, 50%)", "#808080"),
    ])
    def test_normalizes_to_six_digit_hex(self, value, expected):
        assert normalize_color(value) == expected

    @pytest.mark.parametrize("value", ["rgba(0, 0, 0, 0)", "#0000", "#ffffff00", "hsla(0, 0%, 0%, 0)"])
    def test_fully_transparent_is_none(self, value):
        assert normalize_color(value) is None

    def test_accepts_parsed_literal(self):
        assert normalize_color(parse_color_literal("rgb(26, 115, 232)")) == "#1a73e8"


class TestFindColorLiterals:

    def test_in_order(self):
        found = find_color_literals("linear-gradient(rgba(0,0,0,.5), #e91e63 40%, hsl(200, 80%, 40%))")
        assert [f.kind for f in found] == ["rgb", "hex", "hsl"]

    def test_skips_non_color_hashes(self):
        assert find_color_literals("url(#abcdefg) #fff1x") == []

    def test_ignores_fragments_inside_url(self):
        assert find_color_literals("url(icons.svg#abc) no-repeat") == []
        assert find_color_literals('url("sprite.svg#fff")') == []

    def test_shorthand_value(self):
        found = find_color_literals("1px solid #E91E63")
        assert [normalize_color(f) for f in found] == ["#e91e63"]

    def test_accepts_token_list(self):
        tokens = tinycss2.parse_component_value_list("0 0 0 2px #1a73e8")
        assert [normalize_color(f) for f in find_color_literals(tokens)] == ["#1a73e8"]


# ============================================================================
# Color spaces
# ============================================================================

class TestLab:

    def test_white_and_black(self):
        assert hex_to_lab("#ffffff") == pytest.approx([100.0, 0.0, 0.0], abs=0.01)
        assert hex_to_lab("#000000") == pytest.approx([0.0, 0.0, 0.0], abs=0.01)

    def test_known_red(self):
        # sRGB赤のLAB値（D65）
        assert hex_to_lab("#ff0000") == pytest.approx([53.24, 80.09, 67.20], abs=0.05)

    @pytest.mark.parametrize("color", ["#1a73e8", "#ff6600", "#0f172a", "#f8fafc", "#777777", "#00ff00"])
    def test_round_trip(self, color):
        assert lab_to_hex(hex_to_lab(color)) == color

    def test_vectorized(self):
        lab = rgb_to_lab(np.array([[255, 0, 0], [0, 0, 255]]))
        assert lab.shape == (2, 3)

    def test_out_of_gamut_is_clipped(self):
        assert lab_to_hex((100.0, 120.0, 120.0)).startswith("#")

    def test_delta_e(self):
        assert delta_e("#ff0000", "#ff0000") == 0.0
        assert delta_e("#ff0000", "#fe0101") < 2.0
        assert delta_e("#ff0000", "#00ff00") > 100.0


# ============================================================================
# WCAG
# ============================================================================

class TestContrast:

    def test_luminance_extremes(self):
        assert relative_luminance("#ffffff") == pytest.approx(1.0)
        assert relative_luminance("#000000") == 0.0

    def test_black_on_white(self):
        assert contrast_ratio("#000000", "#ffffff") == pytest.approx(21.0)
        assert contrast_ratio("#ffffff", "#000000") == pytest.approx(21.0)

    def test_gray_777_just_fails_aa(self):
        ratio = contrast_ratio("#777777", "#ffffff")
        assert 4.4 < ratio < 4.5
        assert not meets_wcag_aa("#777777", "#ffffff")

    def test_aa_and_aaa(self):
        assert meets_wcag_aa("#0f172a", "#ffffff")
        assert meets_wcag_aaa("#0f172a", "#ffffff")
        assert meets_wcag_aa("#595959", "#ffffff")
        assert not meets_wcag_aaa("#767676", "#ffffff")


class TestHelpers:

    def test_saturation(self):
        assert saturation("#808080") == 0.0
        assert saturation("#000000") == 0.0
        assert saturation("#ff0000") == 1.0

    def test_is_light_color(self):
        assert is_light_color("#ffffff")
        assert not is_light_color("#0f172a")
