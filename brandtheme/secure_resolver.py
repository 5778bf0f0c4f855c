"""
SSRF対策付きのURL検証・名前解決
スキームとホスト名を検査し、DNSで得た全アドレスをブロック対象レンジと照合する。
通過したアドレスを接続先として固定（ピン留め）するために返す。
リダイレクト先・スタイルシート・@import・ロゴの各URLでも毎回呼び出すこと。
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from typing import Awaitable, Callable
from urllib.parse import SplitResult, urlsplit

from brandtheme.errors import InvalidURLError, NetworkError, SecurityError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

# 名前だけで拒否するホスト（メタデータサービス・ループバック）
BLOCKED_HOSTNAMES = frozenset({
    "localhost",
    "localhost.localdomain",
    "metadata",
    "metadata.google.internal",
    "instance-data",
    "instance-data.ec2.internal",
})

BLOCKED_NETWORKS_V4 = tuple(ipaddress.IPv4Network(n) for n in (
    "0.0.0.0/8",          # this network
    "10.0.0.0/8",         # RFC1918
    "100.64.0.0/10",      # CGNAT
    "127.0.0.0/8",        # loopback
    "169.254.0.0/16",     # link-local
    "172.16.0.0/12",      # RFC1918
    "192.0.0.0/24",       # IETF protocol assignments
    "192.0.2.0/24",       # TEST-NET-1
    "192.88.99.0/24",     # 6to4 relay anycast
    "192.168.0.0/16",     # RFC1918
    "198.18.0.0/15",      # benchmark
    "198.51.100.0/24",    # TEST-NET-2
    "203.0.113.0/24",     # TEST-NET-3
    "224.0.0.0/4",        # multicast
    "240.0.0.0/4",        # reserved
    "255.255.255.255/32", # broadcast
))

BLOCKED_NETWORKS_V6 = tuple(ipaddress.IPv6Network(n) for n in (
    "::/128",             # unspecified
    "::1/128",            # loopback
    "::ffff:0:0/96",      # IPv4-mapped
    "::/96",              # IPv4-compatible
    "64:ff9b::/96",       # NAT64
    "64:ff9b:1::/48",     # local-use NAT64
    "100::/64",           # discard-only
    "2001::/32",          # Teredo
    "2001:10::/28",       # ORCHID
    "2001:20::/28",       # ORCHIDv2
    "2001:db8::/32",      # documentation
    "2002::/16",          # 6to4
    "fc00::/7",           # unique-local
    "fe80::/10",          # link-local
    "fec0::/10",          # site-local
    "ff00::/8",           # multicast
))

Lookup = Callable[[str, int], Awaitable[list[str]]]


def parse_url(url: str) -> SplitResult:
    """URLとして解釈できなければ InvalidURLError"""
    if not isinstance(url, str) or not url.strip():
        raise InvalidURLError("URLが空です")
    try:
        parts = urlsplit(url.strip())
        # ポート番号の妥当性はアクセス時に初めて検証されるため、ここで評価しておく
        parts.port
    except ValueError as e:
        raise InvalidURLError(f"URLの形式が不正です: {url!r}") from e
    if not parts.scheme:
        raise InvalidURLError(f"スキームのないURLです: {url!r}")
    if parts.scheme.lower() in ALLOWED_SCHEMES and not parts.hostname:
        raise InvalidURLError(f"ホスト名のないURLです: {url!r}")
    return parts


def check_url(url: str) -> SplitResult:
    """スキームとホスト名だけを検査する（名前解決なし）"""
    parts = parse_url(url)
    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise SecurityError(f"許可されていないスキームです: {scheme}")
    hostname = normalize_hostname(parts.hostname or "")
    if not hostname:
        raise SecurityError("ホスト名がありません")
    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        raise SecurityError(f"アクセスが禁止されたホストです: {hostname}")
    return parts


def normalize_hostname(hostname: str) -> str:
    return hostname.strip().lower().rstrip(".")


def is_blocked_address(address: str) -> bool:
    """
    内部・予約済みレンジに属するアドレスなら True。
    解釈できない文字列も安全側に倒して True を返す。
    """
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True

    if ip.version == 4:
        if any(ip in net for net in BLOCKED_NETWORKS_V4):
            return True
    else:
        if any(ip in net for net in BLOCKED_NETWORKS_V6):
            return True

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def default_port(parts: SplitResult) -> int:
    if parts.port:
        return parts.port
    return 443 if parts.scheme.lower() == "https" else 80


class SecureResolver:
    """URLを検証し、接続に使ってよいIPアドレスを1つ返す"""

    def __init__(self, timeout: float = 5.0, lookup: Lookup | None = None):
        self.timeout = timeout
        self._lookup = lookup or self._system_lookup

    async def resolve(self, url: str) -> str:
        parts = check_url(url)
        hostname = normalize_hostname(parts.hostname or "")

        try:
            addresses = await asyncio.wait_for(
                self._lookup(hostname, default_port(parts)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise NetworkError(f"名前解決がタイムアウトしました: {hostname}") from e
        except socket.gaierror as e:
            raise NetworkError(f"名前解決に失敗しました: {hostname} ({e})") from e

        if not addresses:
            raise SecurityError(f"アドレスが見つかりません: {hostname}")

        accepted = [a for a in addresses if not is_blocked_address(a)]
        if not accepted:
            raise SecurityError(
                f"内部・予約済みアドレスへのアクセスは禁止されています: {hostname} -> {', '.join(addresses)}"
            )
        if len(accepted) < len(addresses):
            logger.warning(
                "ブロック対象アドレスを除外しました: %s (%d/%d 件を採用)",
                hostname, len(accepted), len(addresses),
            )

        logger.debug("名前解決: %s -> %s", hostname, accepted[0])
        return accepted[0]

    @staticmethod
    async def _system_lookup(hostname: str, port: int) -> list[str]:
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(hostname, port, type=socket.SOCK_STREAM)
        addresses = []
        for family, _, _, _, sockaddr in infos:
            if family not in (socket.AF_INET, socket.AF_INET6):
                continue
            ip = str(sockaddr[0]).split("%", 1)[0]
            if ip not in addresses:
                addresses.append(ip)
        return addresses
