"""
知覚的な色クラスタリングとパレット構築
色候補をCIE LAB空間に変換してk-means（k-means++初期化）でまとめ、
近すぎる色を除いた最大8色のパレットと、WCAG AAを満たす役割別パレットを作る。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Sequence

import numpy as np

from brandtheme.color_extractor import CandidateColor
from brandtheme.colors import (
    contrast_ratio,
    delta_e,
    hex_to_lab,
    hex_to_rgb,
    is_light_color,
    lab_to_hex,
    rgb_to_lab,
    relative_luminance,
)
from brandtheme.settings import ExtractorSettings

logger = logging.getLogger(__name__)

# 重心の移動がこれ未満なら収束とみなす（LAB単位）
CONVERGENCE_EPSILON = 1e-4
LIGHTNESS_STEP = 2.0
MAX_CONTRAST_ITERATIONS = 50

LIGHT_NEUTRALS = {
    "background": "#ffffff",
    "surface": "#f8fafc",
    "text": "#0f172a",
    "text_secondary": "#64748b",
    "border": "#e2e8f0",
}

DARK_NEUTRALS = {
    "background": "#0f172a",
    "surface": "#1e293b",
    "text": "#f1f5f9",
    "text_secondary": "#94a3b8",
    "border": "#334155",
}


@dataclass(frozen=True)
class ColorCluster:
    """LAB空間の重心と、そこに割り当てられた色"""

    centroid: tuple[float, float, float]
    colors: tuple[str, ...]
    hex: str


@dataclass(frozen=True)
class ColorPalette:
    primary: str
    secondary: str
    accent: str
    background: str
    surface: str
    text: str
    text_secondary: str
    border: str


DEFAULT_PALETTE = ColorPalette(
    primary="#2563eb",
    secondary="#64748b",
    accent="#0ea5e9",
    background="#ffffff",
    surface="#f8fafc",
    text="#0f172a",
    text_secondary="#475569",
    border="#e2e8f0",
)


@dataclass(frozen=True)
class ContrastCheck:
    ratio: float
    passes: bool


@dataclass(frozen=True)
class AccessibilityReport:
    passes: bool
    text_on_background: ContrastCheck
    text_on_surface: ContrastCheck
    recommendations: tuple[str, ...]


class PerceptualClusterer:
    """色のクラスタリング・役割割り当て・コントラスト調整"""

    def __init__(self, settings: ExtractorSettings | None = None, rng: np.random.Generator | None = None):
        self.settings = settings or ExtractorSettings()
        self.rng = rng or np.random.default_rng()

    # =============================================
    # k-means
    # =============================================

    def kmeans(
        self,
        colors: Sequence[str],
        k: int,
        max_iterations: int | None = None,
        weights: Sequence[float] | None = None,
    ) -> list[ColorCluster]:
        """
        LAB空間でk-meansを行い、メンバー数の多い順にクラスタを返す。

        Args:
            colors: #rrggbb のリスト
            k: クラスタ数（色数を超える場合は色数に合わせる）
            max_iterations: 反復上限（省略時は設定値、既定100）
            weights: 同数のクラスタの並び順を決める色ごとの重み
        """
        if not colors or k <= 0:
            return []
        max_iterations = max_iterations or self.settings.kmeans_max_iterations

        points = rgb_to_lab(np.array([hex_to_rgb(c) for c in colors], dtype=float))
        centroids = self._init_centroids(points, min(k, len(colors)))

        for iteration in range(max_iterations):
            labels = self._assign(points, centroids)
            updated = centroids.copy()
            for i in range(len(centroids)):
                members = points[labels == i]
                if len(members):
                    updated[i] = members.mean(axis=0)
            moved = np.abs(updated - centroids).max() >= CONVERGENCE_EPSILON
            centroids = updated
            if not moved:
                logger.debug("k-means収束: %d 回目", iteration + 1)
                break

        labels = self._assign(points, centroids)
        w = np.asarray(weights, dtype=float) if weights is not None else np.ones(len(colors))
        scored = []
        for i, centroid in enumerate(centroids):
            idx = np.flatnonzero(labels == i)
            if len(idx) == 0:
                continue
            cluster = ColorCluster(
                centroid=tuple(float(v) for v in centroid),
                colors=tuple(colors[j] for j in idx),
                hex=lab_to_hex(centroid),
            )
            scored.append((len(idx), float(w[idx].sum()), cluster))

        scored.sort(key=lambda s: (-s[0], -s[1]))
        return [cluster for _, _, cluster in scored]

    def _init_centroids(self, points: np.ndarray, k: int) -> np.ndarray:
        """k-means++: 既存の重心から遠い点ほど選ばれやすくする"""
        n = len(points)
        chosen = [int(self.rng.integers(n))]
        while len(chosen) < k:
            dist2 = ((points[:, None, :] - points[chosen][None, :, :]) ** 2).sum(axis=2).min(axis=1)
            total = dist2.sum()
            if total <= 0:
                # 残りがすべて既存の重心と同一色
                break
            chosen.append(int(self.rng.choice(n, p=dist2 / total)))
        return points[chosen].copy()

    @staticmethod
    def _assign(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        dist = np.linalg.norm(points[:, None, :] - centroids[None, :, :], axis=2)
        return dist.argmin(axis=1)

    # =============================================
    # パレット
    # =============================================

    def build_palette(self, candidates: Sequence[CandidateColor]) -> list[str]:
        """
        重み上位の候補をクラスタリングし、互いにΔEが閾値以上離れた最大8色を返す。
        """
        top = list(candidates)[: self.settings.max_candidates]
        if not top:
            return []

        limit = self.settings.max_palette_size
        clusters = self.kmeans(
            [c.hex for c in top],
            min(limit, len(top)),
            weights=[c.weight for c in top],
        )

        palette: list[str] = []
        for cluster in clusters:
            if any(delta_e(cluster.hex, existing) < self.settings.similarity_threshold for existing in palette):
                continue
            palette.append(cluster.hex)
            if len(palette) >= limit:
                break
        return palette

    def brand_colors(self, colors: Sequence[str]) -> tuple[str, str, str]:
        """上位3クラスタから primary / secondary / accent を決める"""
        if not colors:
            return DEFAULT_PALETTE.primary, DEFAULT_PALETTE.secondary, DEFAULT_PALETTE.accent

        # 先頭ほど重要な色として、同数クラスタの並びに反映する
        rank_weights = [len(colors) - i for i in range(len(colors))]
        clusters = self.kmeans(colors, min(5, len(colors)), weights=rank_weights)
        primary = clusters[0].hex if clusters else colors[0]
        secondary = clusters[1].hex if len(clusters) > 1 else (colors[1] if len(colors) > 1 else primary)
        accent = clusters[2].hex if len(clusters) > 2 else (colors[2] if len(colors) > 2 else primary)
        return primary, secondary, accent

    @staticmethod
    def preferred_variant(colors: Sequence[str]) -> str:
        """明るい色が過半数なら "light"、そうでなければ "dark" """
        light = sum(1 for c in colors if is_light_color(c))
        return "light" if light > len(colors) - light else "dark"

    def palette_for(self, brand: tuple[str, str, str], variant: str) -> ColorPalette:
        neutrals = LIGHT_NEUTRALS if variant == "light" else DARK_NEUTRALS
        primary, secondary, accent = brand
        palette = ColorPalette(primary=primary, secondary=secondary, accent=accent, **neutrals)
        return self.ensure_accessibility(palette)

    def assign_roles(self, colors: Sequence[str]) -> ColorPalette:
        """色の明暗の多数派に合わせた役割別パレット"""
        if not colors:
            return DEFAULT_PALETTE
        return self.palette_for(self.brand_colors(colors), self.preferred_variant(colors))

    # =============================================
    # アクセシビリティ
    # =============================================

    def ensure_accessibility(self, palette: ColorPalette) -> ColorPalette:
        """テキストと背景・サーフェスのコントラストをWCAG AAまで引き上げる"""
        target = self.settings.contrast_target

        if contrast_ratio(palette.text, palette.background) < target:
            palette = replace(palette, text=self.adjust_for_contrast(palette.text, palette.background, target))
        if contrast_ratio(palette.text, palette.surface) < target:
            palette = replace(palette, surface=self.adjust_for_contrast(palette.surface, palette.text, target))
        if contrast_ratio(palette.text_secondary, palette.background) < target:
            palette = replace(
                palette,
                text_secondary=self.adjust_for_contrast(palette.text_secondary, palette.background, target),
            )
        return palette

    def adjust_for_contrast(self, color: str, against: str, target: float | None = None) -> str:
        """
        LABのL（明度）だけを動かして、against とのコントラスト比を target 以上にする。
        明度の範囲を使い切っても届かなければ元の色を返す。
        """
        target = target or self.settings.contrast_target

        # against から遠ざかる向きを優先する。同じ明るさなら黒と白のどちらが映えるかで決める
        lum_color, lum_against = relative_luminance(color), relative_luminance(against)
        if lum_color != lum_against:
            direction = 1.0 if lum_color > lum_against else -1.0
        else:
            direction = -1.0 if contrast_ratio(against, "#000000") >= contrast_ratio(against, "#ffffff") else 1.0

        lab = tuple(float(v) for v in hex_to_lab(color))
        for d in (direction, -direction):
            adjusted = self._shift_lightness(lab, against, target, d)
            if adjusted is not None:
                return adjusted

        logger.debug("コントラスト調整に失敗したため元の色を使います: %s on %s", color, against)
        return color

    @staticmethod
    def _shift_lightness(lab: tuple[float, float, float], against: str, target: float, direction: float) -> str | None:
        l, a, b = lab
        for _ in range(MAX_CONTRAST_ITERATIONS):
            candidate = lab_to_hex((l, a, b))
            if contrast_ratio(candidate, against) >= target:
                return candidate
            if (direction < 0 and l <= 0.0) or (direction > 0 and l >= 100.0):
                break
            l = min(max(l + direction * LIGHTNESS_STEP, 0.0), 100.0)
        return None

    def evaluate_accessibility(self, palette: ColorPalette) -> AccessibilityReport:
        target = self.settings.contrast_target
        on_background = contrast_ratio(palette.text, palette.background)
        on_surface = contrast_ratio(palette.text, palette.surface)

        recommendations = []
        if on_background < target:
            recommendations.append(f"Text on background fails WCAG AA (needs {target}:1)")
        if on_surface < target:
            recommendations.append(f"Text on surface fails WCAG AA (needs {target}:1)")

        return AccessibilityReport(
            passes=on_background >= target and on_surface >= target,
            text_on_background=ContrastCheck(on_background, on_background >= target),
            text_on_surface=ContrastCheck(on_surface, on_surface >= target),
            recommendations=tuple(recommendations),
        )
