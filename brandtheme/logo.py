"""
ロゴ画像からの色抽出（ベストエフォート）
許可ドメイン確認 → 名前解決 → IP固定取得の順で画像を取得し、
縮小・減色したピクセルの出現頻度からブランドカラーを推定する。
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Iterable, Sequence
from urllib.parse import urlsplit

import numpy as np
from PIL import Image, UnidentifiedImageError

from brandtheme.colors import rgb_to_hex
from brandtheme.errors import InvalidURLError, SecurityError, ThemeExtractionError
from brandtheme.fetcher import ContentFetcher
from brandtheme.secure_resolver import normalize_hostname
from brandtheme.settings import ExtractorSettings

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = (100, 100)
ALPHA_THRESHOLD = 128
QUANTIZE_STEP = 32
TOP_FREQUENT = 8
MAX_LOGO_COLORS = 6
MERGED_PALETTE_SIZE = 8


def is_allowed_logo_host(url: str, allowed_domains: Sequence[str]) -> bool:
    """許可リストが空なら常に許可。ドメイン自身かそのサブドメインのみ通す"""
    if not allowed_domains:
        return True
    hostname = normalize_hostname(urlsplit(url).hostname or "")
    return any(hostname == d or hostname.endswith("." + d) for d in allowed_domains)


def dominant_colors(image_bytes: bytes, limit: int = MAX_LOGO_COLORS) -> list[str]:
    """
    画像の主要色を頻度順に返す。

    100×100に縮小し、半透明以下のピクセルを除いて32段階に減色したうえで
    上位8色を数え、無彩色と黒・白に近い色を除いた先頭 limit 色を採用する。
    """
    with Image.open(io.BytesIO(image_bytes)) as img:
        img = img.convert("RGBA")
        img.thumbnail(THUMBNAIL_SIZE)
        pixels = np.array(img).reshape(-1, 4)

    opaque = pixels[pixels[:, 3] >= ALPHA_THRESHOLD][:, :3].astype(float)
    if len(opaque) == 0:
        return []

    quantized = np.clip(np.round(opaque / QUANTIZE_STEP) * QUANTIZE_STEP, 0, 255).astype(int)
    unique, counts = np.unique(quantized, axis=0, return_counts=True)
    # 同数は色の値順で安定させる
    order = np.lexsort((unique[:, 2], unique[:, 1], unique[:, 0], -counts))[:TOP_FREQUENT]

    colors = []
    for r, g, b in unique[order]:
        hi, lo = max(r, g, b), min(r, g, b)
        sat = (hi - lo) / hi if hi else 0.0
        value = hi / 255
        if sat > 0.15 and 0.1 < value < 0.95:
            colors.append(rgb_to_hex((r, g, b)))
    return colors[:limit]


def merge_color_sources(primary: Iterable[str], secondary: Iterable[str], limit: int = MERGED_PALETTE_SIZE) -> list[str]:
    """順序を保った和集合。先に渡した側を優先する"""
    merged: list[str] = []
    for color in [*primary, *secondary]:
        if color not in merged:
            merged.append(color)
    return merged[:limit]


class LogoColorExtractor:
    """ロゴURLから色を取り出す。失敗しても空リストを返すだけで処理は止めない"""

    def __init__(self, fetcher: ContentFetcher, settings: ExtractorSettings | None = None):
        self.fetcher = fetcher
        self.settings = settings or fetcher.settings

    async def extract(self, logo_url: str) -> list[str]:
        try:
            if not is_allowed_logo_host(logo_url, self.settings.logo_allowed_domains):
                raise SecurityError(f"許可されていないロゴのドメインです: {logo_url}")
            result = await self.fetcher.fetch_url(
                logo_url,
                max_bytes=self.settings.max_logo_size,
                accept_content_types=["image/"],
            )
            colors = await asyncio.to_thread(dominant_colors, result.content)
        except InvalidURLError as e:
            logger.warning("ロゴURLが不正です: %s (%s)", logo_url, e)
            return []
        except ThemeExtractionError as e:
            logger.warning("ロゴの取得をスキップしました: %s (%s)", logo_url, e)
            return []
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            # 巨大画像・壊れた画像もロゴなしとして扱う
            logger.warning("ロゴ画像を読み込めませんでした: %s (%s)", logo_url, e)
            return []

        logger.info("ロゴから %d 色を抽出: %s", len(colors), logo_url)
        return colors
