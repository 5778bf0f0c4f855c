"""
CSSルールからブランドカラー候補を抽出するモジュール
セレクタの文脈で重み付けし、var() を解決したうえで色リテラルを正規化・集計する。
無彩色（グレー）や黒・白は構造色としてノイズ扱いにする。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Mapping

import tinycss2

from brandtheme.colors import find_color_literals, normalize_color, saturation
from brandtheme.stylesheets import StyleRule

logger = logging.getLogger(__name__)

# ブランドカラーが入りやすいセレクタ（英語圏Webの経験則。設定で差し替え可能）
DEFAULT_BRAND_SELECTORS = (
    ".btn-primary",
    ".button-primary",
    ".btn",
    "button",
    "header",
    "nav",
    ".navbar",
    ".hero",
    ".header",
    ".navigation",
    "a",
    ".link",
    ".brand",
    ".logo",
    "h1",
    "h2",
    ".primary",
    ".accent",
)

# 色を持ちうるプロパティ（カスタムプロパティは別扱い）
COLOR_PROPERTIES = frozenset({
    "color",
    "background-color",
    "background",
    "border-color",
    "border-top-color",
    "border-right-color",
    "border-bottom-color",
    "border-left-color",
    "fill",
    "stroke",
    "outline-color",
    "text-decoration-color",
})

# ブランド色として扱わない値
IGNORE_COLORS = frozenset({
    "#000000",
    "#ffffff",
    "#fff",
    "#000",
    "transparent",
    "inherit",
    "currentcolor",
    "initial",
    "unset",
})

MAX_VARIABLE_DEPTH = 10

_PSEUDO_RE = re.compile(r"::?[\w-]+(?:\([^)]*\))?")
_ATTRIBUTE_RE = re.compile(r"\[[^\]]*\]")
_SIMPLE_SELECTOR_RE = re.compile(r"([.#]?)(-?[_a-zA-Z][\w-]*)")


@dataclass(frozen=True)
class SelectorWeights:
    """セレクタ文脈ごとの重み表"""

    root: float = 10.0
    document: float = 8.0
    brand: float = 5.0
    baseline: float = 1.0
    brand_selectors: tuple[str, ...] = DEFAULT_BRAND_SELECTORS

    def weigh(self, selector: str) -> float:
        """セレクタリストのうち最も重い部分の重みを返す"""
        return max(
            (self._weigh_complex(part) for part in selector.split(",") if part.strip()),
            default=self.baseline,
        )

    def _weigh_complex(self, selector: str) -> float:
        lowered = selector.strip().lower()
        if ":root" in lowered:
            return self.root
        if lowered in ("body", "html"):
            return self.document

        simple = _simple_selectors(lowered)
        for entry in self.brand_selectors:
            entry = entry.lower()
            if entry.startswith("."):
                name = entry[1:]
                if any(prefix == "." and _class_matches(value, name) for prefix, value in simple):
                    return self.brand
            elif ("", entry) in simple:
                return self.brand
        return self.baseline


def _simple_selectors(selector: str) -> set[tuple[str, str]]:
    stripped = _ATTRIBUTE_RE.sub(" ", _PSEUDO_RE.sub(" ", selector))
    tokens = set()
    for m in _SIMPLE_SELECTOR_RE.finditer(stripped):
        prefix, name = m.group(1), m.group(2)
        # 要素名は複合セレクタの先頭にしか来ない
        if prefix == "" and m.start() > 0 and stripped[m.start() - 1] not in " >+~":
            continue
        tokens.add((prefix, name))
    return tokens


def _class_matches(class_name: str, brand_name: str) -> bool:
    # .btn は btn / btn-primary / navbar-btn に一致させる
    return class_name == brand_name or brand_name in class_name.split("-")


@dataclass(frozen=True)
class CandidateColor:
    """正規化済みの色と、その出現回数・重み・出現したセレクタ"""

    hex: str
    count: int
    weight: float
    contexts: tuple[str, ...]


# =============================================
# var() の解決
# =============================================

def resolve_variables(value: str, variables: Mapping[str, str]) -> str:
    """var(--name, fallback) を変数表で置き換える。未定義ならフォールバック値"""
    return _resolve(value, variables, 0, [])


def _resolve(value: str, variables: Mapping[str, str], depth: int, used: list[str]) -> str:
    if "var(" not in value.lower():
        return value
    tokens = tinycss2.parse_component_value_list(value)
    return "".join(_resolve_token(t, variables, depth, used) for t in tokens)


def _resolve_token(token, variables: Mapping[str, str], depth: int, used: list[str]) -> str:
    if token.type != "function":
        return tinycss2.serialize([token])

    if token.lower_name != "var":
        inner = "".join(_resolve_token(a, variables, depth, used) for a in token.arguments)
        return f"{token.name}({inner})"

    name, fallback = _split_var_arguments(token.arguments)
    if name is not None and name in variables and depth < MAX_VARIABLE_DEPTH:
        if name not in used:
            used.append(name)
        return _resolve(variables[name], variables, depth + 1, used)
    if fallback is not None and depth < MAX_VARIABLE_DEPTH:
        return _resolve(fallback, variables, depth + 1, used)
    return ""


def _split_var_arguments(arguments) -> tuple[str | None, str | None]:
    name = None
    for i, arg in enumerate(arguments):
        if arg.type in ("whitespace", "comment"):
            continue
        if name is None:
            if arg.type != "ident":
                return None, None
            name = arg.value
            continue
        if arg.type == "literal" and arg.value == ",":
            return name, tinycss2.serialize(arguments[i + 1:]).strip()
    return name, None


# =============================================
# 抽出
# =============================================

def is_neutral_gray(hex_color: str, threshold: float = 0.15) -> bool:
    """彩度が閾値未満の色（黒を含む）"""
    return saturation(hex_color) < threshold


def extract_colors_from_value(value: str, variables: Mapping[str, str]) -> list[str]:
    """宣言の値から正規化済みの色を取り出す（フィルタ前）"""
    resolved = resolve_variables(value, variables)
    colors = []
    for literal in find_color_literals(resolved):
        normalized = normalize_color(literal)
        if normalized:
            colors.append(normalized)
    return colors


def extract_candidates(
    rules: Iterable[StyleRule],
    variables: Mapping[str, str],
    weights: SelectorWeights | None = None,
    saturation_threshold: float = 0.15,
) -> list[CandidateColor]:
    """
    ルール群から色候補を集計し、重みの降順で返す。

    var() で参照した変数の定義元セレクタ（:root など）の重みも加算する。

    Returns:
        [CandidateColor(hex="#1a73e8", count=2, weight=18.0, contexts=("body", ":root")), ...]
    """
    weights = weights or SelectorWeights()
    rules = list(rules)
    definitions = _variable_definitions(rules)
    color_data: dict[str, dict] = {}

    for rule in rules:
        weight = weights.weigh(rule.selector)
        for prop, value in rule.declarations:
            if prop.startswith("--") or prop not in COLOR_PROPERTIES:
                continue

            used: list[str] = []
            resolved = _resolve(value, variables, 0, used)
            contexts = [rule.selector]
            total_weight = weight
            for name in used:
                origin = definitions.get(name)
                if origin and origin not in contexts:
                    contexts.append(origin)
                    total_weight += weights.weigh(origin)

            for literal in find_color_literals(resolved):
                hex_color = normalize_color(literal)
                if not hex_color or hex_color in IGNORE_COLORS:
                    continue
                if is_neutral_gray(hex_color, saturation_threshold):
                    continue
                data = color_data.setdefault(hex_color, {"count": 0, "weight": 0.0, "contexts": []})
                data["count"] += 1
                data["weight"] += total_weight
                for ctx in contexts:
                    if ctx not in data["contexts"]:
                        data["contexts"].append(ctx)

    candidates = [
        CandidateColor(hex_color, d["count"], d["weight"], tuple(d["contexts"]))
        for hex_color, d in color_data.items()
    ]
    candidates.sort(key=lambda c: (-c.weight, -c.count, c.hex))
    logger.debug("色候補: %d 件", len(candidates))
    return candidates


def _variable_definitions(rules: list[StyleRule]) -> dict[str, str]:
    """カスタムプロパティ名 → 定義したセレクタ（後勝ち）"""
    definitions = {}
    for rule in rules:
        for prop, _ in rule.declarations:
            if prop.startswith("--"):
                definitions[prop] = rule.selector
    return definitions
