"""
取得済みスタイルシートのTTL付きキャッシュ
プロセス全体で共有する唯一の可変リソース。期限切れは読み出し時に判定して破棄する（定期掃除はしない）。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


@dataclass(frozen=True)
class CacheEntry:
    data: str
    created_at: float


class StylesheetCache:
    """URLをキーにしたテキストキャッシュ"""

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, url: str) -> str | None:
        """有効なエントリがあれば本文を返す。期限切れならその場で削除する"""
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self._clock() - entry.created_at >= self.ttl:
            # 同時に別リクエストが書き込んでいた場合は新しい方を残す
            if self._entries.get(url) is entry:
                del self._entries[url]
            logger.debug("キャッシュ期限切れ: %s", url)
            return None
        return entry.data

    def set(self, url: str, data: str) -> None:
        # 同一キーへの同時書き込みは後勝ち
        self._entries[url] = CacheEntry(data=data, created_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, url: str) -> bool:
        return self.get(url) is not None

    def __len__(self) -> int:
        return len(self._entries)
