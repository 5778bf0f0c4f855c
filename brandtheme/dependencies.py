"""
共有依存関係（プロセス全体で使い回すインスタンス）
スタイルシートのキャッシュはリクエスト間で共有するため、ここで一度だけ生成する。
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from brandtheme.cache import StylesheetCache
from brandtheme.clustering import PerceptualClusterer
from brandtheme.extractor import CSSExtractor
from brandtheme.fetcher import ContentFetcher
from brandtheme.logo import LogoColorExtractor
from brandtheme.orchestrator import ThemeOrchestrator
from brandtheme.secure_resolver import SecureResolver
from brandtheme.settings import ExtractorSettings

PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")


@lru_cache(maxsize=None)
def get_settings() -> ExtractorSettings:
    return ExtractorSettings.from_env()


@lru_cache(maxsize=None)
def get_stylesheet_cache() -> StylesheetCache:
    return StylesheetCache(ttl=get_settings().cache_ttl)


@lru_cache(maxsize=None)
def get_fetcher() -> ContentFetcher:
    settings = get_settings()
    return ContentFetcher(SecureResolver(timeout=settings.timeout), settings)


@lru_cache(maxsize=None)
def get_orchestrator() -> ThemeOrchestrator:
    settings = get_settings()
    fetcher = get_fetcher()
    clusterer = PerceptualClusterer(settings)
    return ThemeOrchestrator(
        CSSExtractor(fetcher, get_stylesheet_cache(), clusterer),
        LogoColorExtractor(fetcher, settings),
        clusterer,
    )
