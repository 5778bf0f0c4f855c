"""
CSSからのブランドカラー抽出
ページ取得 → スタイルシート収集 → 色候補の集計 → クラスタリングまでを1回の呼び出しで行う。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from brandtheme.cache import StylesheetCache
from brandtheme.clustering import PerceptualClusterer
from brandtheme.color_extractor import SelectorWeights, extract_candidates, resolve_variables
from brandtheme.errors import ThemeExtractionError
from brandtheme.fetcher import ContentFetcher
from brandtheme.secure_resolver import parse_url
from brandtheme.stylesheets import StylesheetCollector

logger = logging.getLogger(__name__)

# この色数で信頼度1.0とみなす
FULL_CONFIDENCE_COLORS = 5


def confidence_for(colors: list[str]) -> float:
    return min(len(colors) / FULL_CONFIDENCE_COLORS, 1.0)


@dataclass(frozen=True)
class ExtractionResult:
    colors: list[str] = field(default_factory=list)
    css_variables: dict[str, str] = field(default_factory=dict)
    confidence: float = 0.0
    source: str = "fallback"  # css / hybrid / fallback


class CSSExtractor:
    """URLのCSSからパレットを抽出する"""

    def __init__(
        self,
        fetcher: ContentFetcher,
        cache: StylesheetCache | None = None,
        clusterer: PerceptualClusterer | None = None,
        weights: SelectorWeights | None = None,
    ):
        self.fetcher = fetcher
        self.settings = fetcher.settings
        self.cache = cache or StylesheetCache(ttl=self.settings.cache_ttl)
        self.collector = StylesheetCollector(fetcher, self.cache, self.settings)
        self.clusterer = clusterer or PerceptualClusterer(self.settings)
        self.weights = weights or SelectorWeights()

    async def extract_from_url(self, url: str) -> ExtractionResult:
        """
        URLのページとスタイルシートからブランドカラーを抽出する。

        呼び出し元が渡したURLが不正なときだけ InvalidURLError を送出する。
        リダイレクト先や @import 先など、取得した内容に由来する失敗は空の fallback 結果として返す。

        Returns:
            ExtractionResult(colors=["#1a73e8", ...], css_variables={...}, confidence=0.4, source="css")
        """
        parse_url(url)
        try:
            page = await self.fetcher.fetch_url(url)
            styles = await self.collector.collect(page.text, page.url)
        except ThemeExtractionError as e:
            logger.warning("CSS抽出に失敗しました: %s (%s)", url, e)
            return ExtractionResult()

        candidates = extract_candidates(
            styles.rules,
            styles.variables,
            self.weights,
            self.settings.saturation_threshold,
        )
        colors = self.clusterer.build_palette(candidates)
        css_variables = {
            name: resolve_variables(value, styles.variables)
            for name, value in styles.variables.items()
        }

        confidence = confidence_for(colors)
        logger.info("CSS抽出: %s → %d 色（信頼度 %.2f）", url, len(colors), confidence)
        return ExtractionResult(
            colors=colors,
            css_variables=css_variables,
            confidence=confidence,
            source="css",
        )
