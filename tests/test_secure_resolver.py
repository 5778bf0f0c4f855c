"""
SSRF対策のテスト（スキーム・ホストの検査、禁止アドレス帯、名前解決）
"""

import asyncio

import pytest

from brandtheme.errors import InvalidURLError, NetworkError, SecurityError
from brandtheme.secure_resolver import (
    SecureResolver,
    check_url,
    default_port,
    is_blocked_address,
    parse_url,
)

from tests.conftest import PUBLIC_IP, PUBLIC_IP_V6, make_lookup


# ============================================================================
# Address ranges
# ============================================================================

class TestIsBlockedAddress:

    @pytest.mark.parametrize("address", [
        "127.0.0.1",
        "10.1.2.3",
        "172.16.0.1",
        "172.31.255.255",
        "192.168.1.1",
        "169.254.169.254",
        "100.64.0.1",
        "198.18.0.1",
        "192.0.2.10",
        "198.51.100.7",
        "203.0.113.9",
        "0.0.0.0",
        "255.255.255.255",
        "224.0.0.1",
        "240.0.0.1",
    ])
    def test_blocks_internal_ipv4(self, address):
        assert is_blocked_address(address) is True

    @pytest.mark.parametrize("address", [
        "::1",
        "::",
        "fc00::1",
        "fd12:3456::1",
        "fe80::1",
        "fec0::1",
        "ff02::1",
        "::ffff:127.0.0.1",
        "::ffff:8.8.8.8",
        "::8.8.8.8",
        "64:ff9b::808:808",
        "2002:c0a8:101::1",
        "2001:0:4136:e378::1",
        "2001:db8::1",
        "fe80::1%eth0",
    ])
    def test_blocks_internal_ipv6(self, address):
        assert is_blocked_address(address) is True

    @pytest.mark.parametrize("address", [PUBLIC_IP, "8.8.8.8", "1.1.1.1", PUBLIC_IP_V6, "2a00:1450:4001:81c::200e"])
    def test_allows_public_addresses(self, address):
        assert is_blocked_address(address) is False

    def test_unparseable_is_blocked(self):
        assert is_blocked_address("not-an-ip") is True


# ============================================================================
# URL checks
# ============================================================================

class TestCheckUrl:

    @pytest.mark.parametrize("url", ["file:///etc/passwd", "ftp://example.com/", "gopher://example.com"])
    def test_rejects_other_schemes(self, url):
        with pytest.raises(SecurityError):
            check_url(url)

    @pytest.mark.parametrize("url", [
        "http://localhost/",
        "http://LOCALHOST./admin",
        "http://metadata.google.internal/computeMetadata/v1/",
        "http://metadata/",
        "http://instance-data/latest/",
        "http://api.localhost:8080/",
    ])
    def test_rejects_denylisted_hosts(self, url):
        with pytest.raises(SecurityError):
            check_url(url)

    @pytest.mark.parametrize("url", ["", "   ", "example.com/path", "http://", "http://example.com:99999/"])
    def test_invalid_urls(self, url):
        with pytest.raises(InvalidURLError):
            parse_url(url)

    def test_invalid_url_is_value_error(self):
        with pytest.raises(ValueError):
            check_url("not a url")

    def test_default_port(self):
        assert default_port(parse_url("https://example.com/")) == 443
        assert default_port(parse_url("http://example.com/")) == 80
        assert default_port(parse_url("http://example.com:8080/")) == 8080


# ============================================================================
# Resolution
# ============================================================================

class TestSecureResolver:

    @pytest.mark.asyncio
    async def test_returns_public_address(self):
        resolver = SecureResolver(lookup=make_lookup({"example.com": [PUBLIC_IP]}))
        assert await resolver.resolve("https://example.com/") == PUBLIC_IP

    @pytest.mark.asyncio
    async def test_accepts_public_ipv6(self):
        resolver = SecureResolver(lookup=make_lookup({"example.com": [PUBLIC_IP_V6]}))
        assert await resolver.resolve("https://example.com/") == PUBLIC_IP_V6

    @pytest.mark.asyncio
    async def test_all_private_is_rejected(self):
        resolver = SecureResolver(lookup=make_lookup({"evil.example": ["10.0.0.1", "::1"]}))
        with pytest.raises(SecurityError):
            await resolver.resolve("http://evil.example/")

    @pytest.mark.asyncio
    async def test_mixed_answers_return_first_public(self):
        resolver = SecureResolver(lookup=make_lookup({"mixed.example": ["127.0.0.1", PUBLIC_IP]}))
        assert await resolver.resolve("http://mixed.example/") == PUBLIC_IP

    @pytest.mark.asyncio
    async def test_no_addresses_is_rejected(self):
        resolver = SecureResolver(lookup=make_lookup({"empty.example": []}))
        with pytest.raises(SecurityError):
            await resolver.resolve("http://empty.example/")

    @pytest.mark.asyncio
    async def test_ip_literal_is_checked(self):
        async def lookup(hostname, port):
            return [hostname]

        resolver = SecureResolver(lookup=lookup)
        with pytest.raises(SecurityError):
            await resolver.resolve("http://169.254.169.254/latest/meta-data/")
        assert await resolver.resolve("http://8.8.8.8/") == "8.8.8.8"

    @pytest.mark.asyncio
    async def test_dns_failure_is_network_error(self):
        resolver = SecureResolver(lookup=make_lookup({}))
        with pytest.raises(NetworkError):
            await resolver.resolve("https://unknown.example/")

    @pytest.mark.asyncio
    async def test_dns_timeout_is_network_error(self):
        async def slow_lookup(hostname, port):
            await asyncio.sleep(5)
            return [PUBLIC_IP]

        resolver = SecureResolver(timeout=0.05, lookup=slow_lookup)
        with pytest.raises(NetworkError):
            await resolver.resolve("https://example.com/")

    @pytest.mark.asyncio
    async def test_denylisted_host_skips_lookup(self):
        calls = []

        async def lookup(hostname, port):
            calls.append(hostname)
            return [PUBLIC_IP]

        resolver = SecureResolver(lookup=lookup)
        with pytest.raises(SecurityError):
            await resolver.resolve("http://localhost/")
        assert calls == []

    @pytest.mark.asyncio
    async def test_lookup_receives_port(self):
        seen = []

        async def lookup(hostname, port):
            seen.append((hostname, port))
            return [PUBLIC_IP]

        resolver = SecureResolver(lookup=lookup)
        await resolver.resolve("https://Example.COM./")
        assert seen == [("example.com", 443)]

