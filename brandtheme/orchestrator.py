"""
テーマ抽出のオーケストレーター
CSS → ロゴ（任意） → 弱いCSS → 既定テーマ の順に信号源を試し、
採用したパレットからライト・ダークの両テーマと信頼度・出どころを返す。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit

from brandtheme.clustering import PerceptualClusterer
from brandtheme.extractor import CSSExtractor, ExtractionResult, confidence_for
from brandtheme.logo import LogoColorExtractor, merge_color_sources
from brandtheme.secure_resolver import parse_url
from brandtheme.themes import (
    THEME_PRESETS,
    Theme,
    generate_css_variables,
    get_default_theme,
    theme_from_palette,
)

logger = logging.getLogger(__name__)

STRONG_CONFIDENCE = 0.6
MIN_COLORS = 3


class ExtractionStage(str, Enum):
    CSS_EXTRACTION = "css-extraction"
    LOGO_EXTRACTION = "logo-extraction"
    WEAK_CSS_FALLBACK = "weak-css-fallback"
    DEFAULT_FALLBACK = "default-fallback"


@dataclass(frozen=True)
class ThemeData:
    """
    抽出結果。theme は色の明暗の多数派に合わせた方のバリアント。

    source: "css" / "hybrid" / "fallback"（色リストから直接作った場合は "logo"）
    """

    theme: Theme
    light: Theme
    dark: Theme
    palette: list[str]
    css_variables: dict[str, str] = field(default_factory=dict)
    confidence: float = 0.0
    source: str = "fallback"
    stages: tuple[ExtractionStage, ...] = ()

    def to_dict(self) -> dict:
        return {
            "theme": self.theme.to_dict(),
            "light": self.light.to_dict(),
            "dark": self.dark.to_dict(),
            "palette": list(self.palette),
            "css_variables": dict(self.css_variables),
            "css": generate_css_variables(self.theme),
            "confidence": self.confidence,
            "source": self.source,
            "stages": [s.value for s in self.stages],
        }


class ThemeOrchestrator:
    """信号源のフォールバックを管理してテーマを組み立てる"""

    def __init__(
        self,
        css_extractor: CSSExtractor,
        logo_extractor: LogoColorExtractor | None = None,
        clusterer: PerceptualClusterer | None = None,
    ):
        self.css_extractor = css_extractor
        self.logo_extractor = logo_extractor
        self.clusterer = clusterer or css_extractor.clusterer

    async def extract_theme(self, url: str, logo_url: str | None = None) -> ThemeData:
        """
        URL（と任意のロゴURL）からテーマを抽出する。

        呼び出し元が渡したURLが不正なときは InvalidURLError を送出する。
        それ以外の失敗はすべて既定テーマ（confidence 0, source "fallback"）になる。
        """
        parse_url(url)
        stages: list[ExtractionStage] = []
        try:
            return await self._run(url, logo_url, stages)
        except Exception:
            logger.exception("テーマ抽出に失敗したため既定テーマを使います: %s", url)
            stages.append(ExtractionStage.DEFAULT_FALLBACK)
            return self._fallback(tuple(stages))

    async def _run(self, url: str, logo_url: str | None, stages: list[ExtractionStage]) -> ThemeData:
        stages.append(ExtractionStage.CSS_EXTRACTION)
        css = await self.css_extractor.extract_from_url(url)
        name = f"Theme from {urlsplit(url).hostname or url}"

        if css.confidence >= STRONG_CONFIDENCE and len(css.colors) >= MIN_COLORS:
            logger.info("CSSの色を採用: %s（%d 色）", url, len(css.colors))
            return self._build(css.colors, css, "css", name, stages)

        if logo_url and self.logo_extractor is not None:
            stages.append(ExtractionStage.LOGO_EXTRACTION)
            logo_colors = await self.logo_extractor.extract(logo_url)
            merged = merge_color_sources(logo_colors, css.colors)
            if len(merged) >= MIN_COLORS:
                logger.info("ロゴとCSSの色を採用: %s（ロゴ %d / 合計 %d 色）", url, len(logo_colors), len(merged))
                return self._build(merged, css, "hybrid", name, stages)

        stages.append(ExtractionStage.WEAK_CSS_FALLBACK)
        if css.colors:
            logger.info("信頼度の低いCSSの色を採用: %s（信頼度 %.2f）", url, css.confidence)
            return self._build(css.colors, css, "css", name, stages)

        logger.info("色が見つからないため既定テーマを使います: %s", url)
        stages.append(ExtractionStage.DEFAULT_FALLBACK)
        return self._fallback(tuple(stages), css.css_variables)

    def build_theme_from_colors(self, colors: list[str], theme_name: str | None = None) -> ThemeData:
        """抽出済みの色リスト（ロゴ解析の結果など）から直接テーマを作る"""
        if not colors:
            raise ValueError("色が指定されていません")
        return self._build(colors, ExtractionResult(), "logo", theme_name or "Custom Brand Theme", [], confidence=1.0)

    def _build(
        self,
        colors: list[str],
        css: ExtractionResult,
        source: str,
        name: str,
        stages: list[ExtractionStage],
        confidence: float | None = None,
    ) -> ThemeData:
        brand = self.clusterer.brand_colors(colors)
        light = theme_from_palette(self.clusterer.palette_for(brand, "light"), "extracted-light", f"{name} (Light)")
        dark = theme_from_palette(self.clusterer.palette_for(brand, "dark"), "extracted-dark", f"{name} (Dark)")
        preferred = light if self.clusterer.preferred_variant(colors) == "light" else dark

        return ThemeData(
            theme=preferred,
            light=light,
            dark=dark,
            palette=list(colors),
            css_variables=dict(css.css_variables),
            confidence=confidence_for(colors) if confidence is None else confidence,
            source=source,
            stages=tuple(stages),
        )

    @staticmethod
    def _fallback(stages: tuple[ExtractionStage, ...], css_variables: dict | None = None) -> ThemeData:
        light = get_default_theme()
        dark = THEME_PRESETS["modern-dark"]
        colors = light.colors
        return ThemeData(
            theme=light,
            light=light,
            dark=dark,
            palette=[colors.primary, colors.secondary, colors.accent],
            css_variables=dict(css_variables or {}),
            confidence=0.0,
            source="fallback",
            stages=stages,
        )


def extract_theme_from_url(url: str, logo_url: str | None = None) -> ThemeData:
    """
    同期版のエントリポイント（イベントループ外から呼ぶ）。
    共有インスタンスは brandtheme.dependencies から取得する。
    """
    from brandtheme.dependencies import get_orchestrator

    return asyncio.run(get_orchestrator().extract_theme(url, logo_url))
