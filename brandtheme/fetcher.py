"""
IP固定（ピン留め）付きのHTTP取得
接続先は SecureResolver が検証したIPアドレスのみ。ホスト名は Host ヘッダーと
TLSのSNI/証明書検証にだけ使うため、検証後にDNSが書き換えられても影響を受けない。
リダイレクトは自前で追跡し、各ホップを改めて検証する。
"""

from __future__ import annotations

import asyncio
import codecs
import ipaddress
import logging
import time
from dataclasses import dataclass, field
from typing import Mapping, Sequence
from urllib.parse import SplitResult, urljoin, urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter

from brandtheme.errors import InvalidURLError, NetworkError, RedirectLimitError, SizeLimitError
from brandtheme.secure_resolver import SecureResolver, default_port
from brandtheme.settings import ExtractorSettings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FetchResult:
    """取得結果（最終URL・ステータス・本文）"""

    url: str
    status_code: int
    content_type: str
    content: bytes
    encoding: str | None = None
    redirects: tuple[str, ...] = ()

    @property
    def text(self) -> str:
        try:
            return self.content.decode(self.encoding or "utf-8", errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class RawResponse:
    """1ホップ分のレスポンス"""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    content: bytes = b""


class PinnedHostAdapter(HTTPAdapter):
    """IPアドレス宛ての接続でも、SNIと証明書検証は元のホスト名で行う"""

    def __init__(self, hostname: str, **kwargs):
        self.hostname = hostname
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["server_hostname"] = self.hostname
        pool_kwargs["assert_hostname"] = self.hostname
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


def pinned_url(parts: SplitResult, ip: str) -> str:
    """URLのホスト部分を検証済みIPに置き換える"""
    host = f"[{ip}]" if ipaddress.ip_address(ip).version == 6 else ip
    netloc = f"{host}:{default_port(parts)}"
    return urlunsplit((parts.scheme.lower(), netloc, parts.path or "/", parts.query, ""))


def host_header(parts: SplitResult) -> str:
    hostname = parts.hostname or ""
    if ":" in hostname:
        hostname = f"[{hostname}]"
    scheme_port = 443 if parts.scheme.lower() == "https" else 80
    if parts.port and parts.port != scheme_port:
        return f"{hostname}:{parts.port}"
    return hostname


def _charset(content_type: str) -> str | None:
    """Content-Type の charset。Pythonが知らない名前は None（UTF-8扱い）"""
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            name = value.strip().strip("\"'")
            try:
                codecs.lookup(name)
            except LookupError:
                logger.debug("未知のcharsetを無視します: %s", name)
                return None
            return name
    return None


class ContentFetcher:
    """検証済みIPへ接続してURLを取得する"""

    def __init__(self, resolver: SecureResolver, settings: ExtractorSettings | None = None):
        self.resolver = resolver
        self.settings = settings or ExtractorSettings()

    async def fetch_url(
        self,
        url: str,
        max_bytes: int | None = None,
        accept_content_types: Sequence[str] | None = None,
    ) -> FetchResult:
        """URLを検証してから取得する"""
        vetted_ip = await self.resolver.resolve(url)
        return await self.fetch(url, vetted_ip, max_bytes, accept_content_types)

    async def fetch(
        self,
        url: str,
        vetted_ip: str,
        max_bytes: int | None = None,
        accept_content_types: Sequence[str] | None = None,
    ) -> FetchResult:
        """
        検証済みIPに固定してGETする。

        Args:
            url: 取得するURL（検証済みであること）
            vetted_ip: SecureResolver.resolve() が返したアドレス
            max_bytes: 本文の上限（省略時は max_content_size）
            accept_content_types: 許可するContent-Typeの接頭辞（例: ["image/"]）
        """
        limit = max_bytes or self.settings.max_content_size
        current, ip = url, vetted_ip
        redirects: list[str] = []

        while True:
            response = await self._send_with_timeout(current, ip, limit)
            status = response.status_code

            if 300 <= status < 400:
                location = _header(response.headers, "Location")
                if not location:
                    raise NetworkError(f"Locationヘッダーのないリダイレクトです: {current}", status)
                if len(redirects) >= self.settings.max_redirects:
                    raise RedirectLimitError(
                        f"リダイレクトが多すぎます（上限 {self.settings.max_redirects} 回）: {url}"
                    )
                # リダイレクト先も独立した信頼境界として再検証する
                # 解釈できない Location は InvalidURLError ではなく NetworkError にする
                try:
                    target = urljoin(current, location.strip())
                    ip = await self.resolver.resolve(target)
                except (ValueError, InvalidURLError) as e:
                    raise NetworkError(f"不正なリダイレクト先です: {location!r} ({current})", status) from e
                logger.debug("リダイレクト: %s -> %s", current, target)
                redirects.append(target)
                current = target
                continue

            if not 200 <= status < 300:
                raise NetworkError(f"HTTP {status}: {current}", status)

            content_type = _header(response.headers, "Content-Type") or ""
            if accept_content_types and not any(
                content_type.lower().startswith(prefix) for prefix in accept_content_types
            ):
                raise NetworkError(f"想定外のContent-Typeです: {content_type or '(なし)'}", status)

            return FetchResult(
                url=current,
                status_code=status,
                content_type=content_type,
                content=response.content,
                encoding=_charset(content_type),
                redirects=tuple(redirects),
            )

    async def _send_with_timeout(self, url: str, ip: str, max_bytes: int) -> RawResponse:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._send, url, ip, max_bytes),
                timeout=self.settings.timeout,
            )
        except asyncio.TimeoutError as e:
            raise NetworkError(f"タイムアウトしました（{self.settings.timeout}秒）: {url}") from e

    def _send(self, url: str, ip: str, max_bytes: int) -> RawResponse:
        """1ホップ分のリクエスト（ワーカースレッドで実行）"""
        parts = urlsplit(url)
        headers = {
            "Host": host_header(parts),
            "User-Agent": self.settings.user_agent,
            "Accept": "*/*",
        }

        # 1回ごとの読み込みタイムアウトとは別に、本文全体の受信にも期限を設ける
        deadline = time.monotonic() + self.settings.timeout

        with requests.Session() as session:
            session.trust_env = False
            if parts.scheme.lower() == "https":
                session.mount("https://", PinnedHostAdapter(parts.hostname or ""))
            try:
                with session.get(
                    pinned_url(parts, ip),
                    headers=headers,
                    timeout=self.settings.timeout,
                    allow_redirects=False,
                    stream=True,
                ) as resp:
                    if not 200 <= resp.status_code < 300:
                        return RawResponse(resp.status_code, dict(resp.headers))
                    body = _read_limited(resp, max_bytes, url, deadline)
                    return RawResponse(resp.status_code, dict(resp.headers), body)
            except requests.Timeout as e:
                raise NetworkError(f"タイムアウトしました: {url}") from e
            except requests.RequestException as e:
                raise NetworkError(f"URLの取得に失敗しました: {url} ({e})") from e


def _read_limited(
    resp: requests.Response,
    max_bytes: int,
    url: str,
    deadline: float | None = None,
) -> bytes:
    """
    本文を上限付きで読む。

    Content-Length の申告と実際の受信量の両方を上限と比べる。deadline（time.monotonic() 基準）を
    過ぎたらチャンクの途中でも打ち切る。接続は呼び出し側の with ブロックで閉じられる。
    """
    declared = resp.headers.get("Content-Length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise SizeLimitError(
            f"レスポンスが大きすぎます: {declared} bytes（上限 {max_bytes}）: {url}",
            size=int(declared), limit=max_bytes,
        )

    body = bytearray()
    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
        if deadline is not None and time.monotonic() > deadline:
            raise NetworkError(f"本文の受信がタイムアウトしました: {url}")
        body.extend(chunk)
        if len(body) > max_bytes:
            raise SizeLimitError(
                f"レスポンスが上限 {max_bytes} bytes を超えました: {url}",
                size=len(body), limit=max_bytes,
            )
    return bytes(body)


def _header(headers: Mapping[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None
