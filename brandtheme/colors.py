"""
色表現の解析と色空間変換
CSSの色リテラル（hex / rgb() / hsl()）をtinycss2のトークンから型付きで取り出して #rrggbb に正規化し、
知覚的な距離計算のための sRGB ⇄ CIE LAB 変換、WCAGのコントラスト比を提供する。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Iterable, Union

import numpy as np
import tinycss2
from tinycss2 import color3


# ===== 色リテラル =====

@dataclass(frozen=True)
class _ColorLiteral:
    text: str
    rgba: color3.RGBA

    def to_rgb(self) -> tuple[int, int, int]:
        return tuple(_clamp_channel(c * 255) for c in self.rgba[:3])

    @property
    def alpha(self) -> float:
        return min(max(float(self.rgba.alpha), 0.0), 1.0)


@dataclass(frozen=True)
class HexLiteral(_ColorLiteral):
    """#rgb / #rgba / #rrggbb / #rrggbbaa"""

    kind: ClassVar[str] = "hex"


@dataclass(frozen=True)
class RgbLiteral(_ColorLiteral):
    """rgb() / rgba()"""

    kind: ClassVar[str] = "rgb"


@dataclass(frozen=True)
class HslLiteral(_ColorLiteral):
    """hsl() / hsla()"""

    kind: ClassVar[str] = "hsl"


ColorLiteral = Union[HexLiteral, RgbLiteral, HslLiteral]

_COLOR_FUNCTIONS = {
    "rgb": RgbLiteral,
    "rgba": RgbLiteral,
    "hsl": HslLiteral,
    "hsla": HslLiteral,
}


def _clamp_channel(value: float) -> int:
    return max(0, min(255, int(round(value))))


def literal_from_token(token) -> ColorLiteral | None:
    """
    tinycss2のトークン1つを色リテラルにする。
    hashトークンと rgb/rgba/hsl/hsla 関数だけを対象とし、色名などのキーワードは扱わない。
    """
    if token.type == "hash":
        literal_type = HexLiteral
    elif token.type == "function" and token.lower_name in _COLOR_FUNCTIONS:
        literal_type = _COLOR_FUNCTIONS[token.lower_name]
    else:
        return None

    parsed = color3.parse_color(token)
    if not isinstance(parsed, color3.RGBA):
        return None
    return literal_type(token.serialize(), parsed)


def parse_color_literal(value: str) -> ColorLiteral | None:
    """単一の色リテラル文字列を型付きの値に変換する。対応外なら None"""
    token = tinycss2.parse_one_component_value(value, skip_comments=True)
    if token.type == "error":
        return None
    return literal_from_token(token)


def find_color_literals(value: str | list) -> list[ColorLiteral]:
    """
    値に現れる色リテラルを出現順にすべて取り出す。
    linear-gradient() などの関数や括弧ブロックの中も辿る。url() の中身は見ない。
    """
    tokens = tinycss2.parse_component_value_list(value, skip_comments=True) if isinstance(value, str) else value
    found: list[ColorLiteral] = []
    for token in tokens:
        literal = literal_from_token(token)
        if literal is not None:
            found.append(literal)
        elif token.type == "function" and token.lower_name not in _COLOR_FUNCTIONS:
            found.extend(find_color_literals(token.arguments))
        elif token.type in ("() block", "[] block"):
            found.extend(find_color_literals(token.content))
    return found


def normalize_color(value: str | ColorLiteral) -> str | None:
    """
    色リテラルを小文字6桁の #rrggbb に正規化する。
    完全に透明な色・解釈できない値は None。

    >>> normalize_color("#ABC")
    '#aabbcc'
    """
    literal = parse_color_literal(value) if isinstance(value, str) else value
    if literal is None or literal.alpha <= 0:
        return None
    return rgb_to_hex(literal.to_rgb())


# ===== 基本変換 =====

def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """#rrggbb → (r, g, b)"""
    h = hex_color.lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def rgb_to_hex(rgb: Iterable[int]) -> str:
    r, g, b = (_clamp_channel(c) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def brightness(hex_color: str) -> float:
    """0-255の明度を返す（人間の知覚に近いweighted）"""
    r, g, b = hex_to_rgb(hex_color)
    return 0.299 * r + 0.587 * g + 0.114 * b


def is_light_color(hex_color: str) -> bool:
    return brightness(hex_color) > 128


def saturation(hex_color: str) -> float:
    """(max - min) / max。黒は0"""
    r, g, b = hex_to_rgb(hex_color)
    hi, lo = max(r, g, b), min(r, g, b)
    if hi == 0:
        return 0.0
    return (hi - lo) / hi


# ===== CIE LAB =====

_SRGB_TO_XYZ = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041],
])
_XYZ_TO_SRGB = np.linalg.inv(_SRGB_TO_XYZ)
_WHITE_D65 = np.array([0.95047, 1.00000, 1.08883])
_EPSILON = 216 / 24389
_KAPPA = 24389 / 27


def rgb_to_lab(rgb) -> np.ndarray:
    """sRGB(0-255) → XYZ → LAB。(..., 3) の配列をそのまま受け付ける"""
    c = np.asarray(rgb, dtype=float) / 255.0
    linear = np.where(c > 0.04045, ((c + 0.055) / 1.055) ** 2.4, c / 12.92)
    xyz = linear @ _SRGB_TO_XYZ.T / _WHITE_D65
    f = np.where(xyz > _EPSILON, np.cbrt(xyz), (_KAPPA * xyz + 16) / 116)
    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    return np.stack([116 * fy - 16, 500 * (fx - fy), 200 * (fy - fz)], axis=-1)


def lab_to_rgb(lab) -> np.ndarray:
    """LAB → XYZ → sRGB(0-255の整数)。色域外は切り詰める"""
    lab = np.asarray(lab, dtype=float)
    fy = (lab[..., 0] + 16) / 116
    fx = lab[..., 1] / 500 + fy
    fz = fy - lab[..., 2] / 200
    f = np.stack([fx, fy, fz], axis=-1)
    f3 = f ** 3
    xyz = np.where(f3 > _EPSILON, f3, (116 * f - 16) / _KAPPA) * _WHITE_D65
    linear = np.clip(xyz @ _XYZ_TO_SRGB.T, 0.0, 1.0)
    c = np.where(linear > 0.0031308, 1.055 * linear ** (1 / 2.4) - 0.055, 12.92 * linear)
    return np.clip(np.round(c * 255), 0, 255).astype(int)


def hex_to_lab(hex_color: str) -> np.ndarray:
    return rgb_to_lab(hex_to_rgb(hex_color))


def lab_to_hex(lab) -> str:
    return rgb_to_hex(int(v) for v in lab_to_rgb(lab))


def delta_e(color1: str, color2: str) -> float:
    """LAB空間のユークリッド距離（CIE76 ΔE）"""
    return float(np.linalg.norm(hex_to_lab(color1) - hex_to_lab(color2)))


# ===== WCAG =====

def relative_luminance(hex_color: str) -> float:
    def channel(c: int) -> float:
        v = c / 255.0
        return v / 12.92 if v <= 0.03928 else ((v + 0.055) / 1.055) ** 2.4

    r, g, b = hex_to_rgb(hex_color)
    return 0.2126 * channel(r) + 0.7152 * channel(g) + 0.0722 * channel(b)


def contrast_ratio(color1: str, color2: str) -> float:
    l1 = relative_luminance(color1)
    l2 = relative_luminance(color2)
    lighter, darker = max(l1, l2), min(l1, l2)
    return (lighter + 0.05) / (darker + 0.05)


def meets_wcag_aa(text_color: str, background_color: str) -> bool:
    """通常サイズのテキストで 4.5:1 以上"""
    return contrast_ratio(text_color, background_color) >= 4.5


def meets_wcag_aaa(text_color: str, background_color: str) -> bool:
    return contrast_ratio(text_color, background_color) >= 7.0
