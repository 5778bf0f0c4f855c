"""
セレクタの重み付け、var() の解決、色候補の集計のテスト
"""

import pytest

from brandtheme.color_extractor import (
    SelectorWeights,
    extract_candidates,
    extract_colors_from_value,
    is_neutral_gray,
    resolve_variables,
)
from brandtheme.stylesheets import StyleRule, parse_stylesheet


def _rules(css: str):
    sheet = parse_stylesheet(css)
    return sheet.rules, sheet.variables


# ============================================================================
# Selector weights
# ============================================================================

class TestSelectorWeights:

    @pytest.mark.parametrize("selector,expected", [
        (":root", 10),
        ("html", 8),
        ("body", 8),
        (".btn-primary", 5),
        ("header .nav-item", 5),
        ("a:hover", 5),
        (".navbar-btn", 5),
        ("h1", 5),
        ("button[type=submit]", 5),
        (".card", 1),
        ("body .card", 1),
        ("p", 1),
        (".abtest", 1),
        ("#main", 1),
    ])
    def test_weights(self, selector, expected):
        assert SelectorWeights().weigh(selector) == expected

    def test_selector_list_uses_heaviest_part(self):
        assert SelectorWeights().weigh(".card, :root") == 10

    def test_custom_table(self):
        weights = SelectorWeights(brand_selectors=(".cta",))
        assert weights.weigh(".cta") == 5
        assert weights.weigh(".btn-primary") == 1


# ============================================================================
# var()
# ============================================================================

class TestResolveVariables:

    def test_nested_and_fallback(self):
        variables = {"--brand": "var(--blue)", "--blue": "#1a73e8"}
        assert resolve_variables("var(--brand)", variables) == "#1a73e8"
        assert resolve_variables("var(--missing, #ff6600)", variables) == "#ff6600"
        assert resolve_variables("var(--missing, var(--blue))", variables) == "#1a73e8"

    def test_unresolved_without_fallback_is_empty(self):
        assert resolve_variables("var(--missing)", {}) == ""

    def test_inside_functions(self):
        value = resolve_variables("linear-gradient(var(--a), var(--b, red))", {"--a": "#123456"})
        assert value == "linear-gradient(#123456, red)"

    def test_self_reference_terminates(self):
        assert resolve_variables("var(--loop)", {"--loop": "var(--loop)"}) == ""

    def test_extract_colors_from_value(self):
        colors = extract_colors_from_value("1px solid var(--c)", {"--c": "rgb(233, 30, 99)"})
        assert colors == ["#e91e63"]


# ============================================================================
# Candidates
# ============================================================================

class TestExtractCandidates:

    def test_variable_credits_root_and_body(self):
        rules, variables = _rules(":root { --brand: #1a73e8 } body { color: var(--brand) }")

        candidates = extract_candidates(rules, variables)

        assert len(candidates) == 1
        brand = candidates[0]
        assert brand.hex == "#1a73e8"
        assert brand.weight == 18
        assert brand.count == 1
        assert brand.contexts == ("body", ":root")

    def test_unused_custom_property_is_not_counted(self):
        rules, variables = _rules(":root { --unused: #ff6600 } .card { color: #1a73e8 }")
        assert [c.hex for c in extract_candidates(rules, variables)] == ["#1a73e8"]

    def test_grays_and_ignore_list_are_dropped(self):
        rules, variables = _rules("""
            body { color: #333333; background: #ffffff }
            .card { border-color: #e2e8f0; background-color: rgba(0,0,0,0) }
            .x { color: transparent; outline-color: #000 }
            .brand { color: #e91e63 }
        """)
        assert [c.hex for c in extract_candidates(rules, variables)] == ["#e91e63"]

    def test_non_color_properties_are_ignored(self):
        rules, variables = _rules(".btn { width: 10px; content: '#ff0000'; box-shadow: 0 0 1px #ff0000 }")
        assert extract_candidates(rules, variables) == []

    def test_ranked_by_weight_then_count(self):
        rules, variables = _rules("""
            .card { color: #ff6600 }
            .card2 { color: #ff6600 }
            .card3 { color: #ff6600 }
            .btn-primary { background-color: #1a73e8 }
            body { color: #2e7d32 }
        """)
        candidates = extract_candidates(rules, variables)

        assert [c.hex for c in candidates] == ["#2e7d32", "#1a73e8", "#ff6600"]
        assert candidates[2].count == 3
        assert candidates[2].weight == 3

    def test_contexts_accumulate(self):
        rules = [
            StyleRule("header", (("background-color", "#1a73e8"),)),
            StyleRule("a", (("color", "#1A73E8"),)),
        ]
        candidates = extract_candidates(rules, {})
        assert candidates[0].contexts == ("header", "a")
        assert candidates[0].weight == 10

    def test_saturation_threshold_is_configurable(self):
        rules = [StyleRule(".muted", (("color", "#7a8a99"),))]
        assert extract_candidates(rules, {}, saturation_threshold=0.15) != []
        assert extract_candidates(rules, {}, saturation_threshold=0.3) == []

    def test_is_neutral_gray(self):
        assert is_neutral_gray("#808285")
        assert not is_neutral_gray("#1a73e8")
