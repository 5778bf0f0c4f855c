"""
テスト共通のフィクスチャ
ネットワークには出ず、DNSは辞書、HTTPは FakeFetcher で置き換える。
"""

from __future__ import annotations

import socket

import pytest

from brandtheme.cache import StylesheetCache
from brandtheme.errors import NetworkError
from brandtheme.fetcher import ContentFetcher, FetchResult, _charset
from brandtheme.secure_resolver import SecureResolver
from brandtheme.settings import ExtractorSettings

PUBLIC_IP = "93.184.216.34"
PUBLIC_IP_V6 = "2606:2800:220:1:248:1893:25c8:1946"


def make_lookup(table: dict[str, list[str]]):
    """ホスト名 → アドレス一覧の辞書を引くだけの名前解決"""

    async def lookup(hostname: str, port: int) -> list[str]:
        if hostname not in table:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return list(table[hostname])

    return lookup


class FakeFetcher(ContentFetcher):
    """
    URL → 本文の辞書から返す。取得したURLを calls に記録する
    bytes は画像、str はCSSとして返す。(Content-Type, str) の組で種類を指定できる
    """

    def __init__(self, resolver: SecureResolver, pages: dict, settings: ExtractorSettings | None = None):
        super().__init__(resolver, settings)
        self.pages = pages
        self.calls: list[str] = []

    async def fetch(self, url, vetted_ip, max_bytes=None, accept_content_types=None):
        self.calls.append(url)
        body = self.pages.get(url)
        if body is None:
            raise NetworkError(f"HTTP 404: {url}", 404)
        if isinstance(body, Exception):
            raise body
        if isinstance(body, tuple):
            content_type, content = body[0], body[1].encode("utf-8")
        elif isinstance(body, bytes):
            content_type, content = "image/png", body
        else:
            content_type, content = "text/css; charset=utf-8", body.encode("utf-8")
        if accept_content_types and not any(content_type.startswith(p) for p in accept_content_types):
            raise NetworkError(f"想定外のContent-Typeです: {content_type}", 200)
        return FetchResult(
            url=url,
            status_code=200,
            content_type=content_type,
            content=content,
            encoding=_charset(content_type),
        )


@pytest.fixture
def settings():
    return ExtractorSettings(timeout=1.0)


@pytest.fixture
def resolver():
    return SecureResolver(
        timeout=1.0,
        lookup=make_lookup({
            "example.com": [PUBLIC_IP],
            "cdn.example.com": [PUBLIC_IP],
            "fonts.example.net": [PUBLIC_IP],
            "brand.example.com": [PUBLIC_IP],
            "internal.example.com": ["10.0.0.5"],
        }),
    )


@pytest.fixture
def cache():
    return StylesheetCache(ttl=3600)


@pytest.fixture
def make_fetcher(resolver, settings):
    def factory(pages: dict) -> FakeFetcher:
        return FakeFetcher(resolver, pages, settings)

    return factory
