"""Tests for rate limit keying and trusted proxy configuration."""

import ipaddress
from types import SimpleNamespace

import pytest

from peerassist import rate_limit
from peerassist.config import Settings


def _request(host: str, forwarded_for: str | None = None):
    headers = {"x-forwarded-for": forwarded_for} if forwarded_for else {}
    return SimpleNamespace(client=SimpleNamespace(host=host), headers=headers)


@pytest.fixture(autouse=True)
def reset_trusted_networks():
    """Force the CIDR list to be re-read for each test."""
    rate_limit.trusted_networks.cache_clear()
    yield
    rate_limit.trusted_networks.cache_clear()


@pytest.fixture
def default_networks():
    return rate_limit.parse_networks(Settings().trusted_proxy_cidrs)


class TestTrustedNetworks:
    """CIDRs come from settings."""

    def test_defaults_cover_private_ranges(self, default_networks):
        assert len(default_networks) == 5  # 4 IPv4 + 1 IPv6

    def test_invalid_cidrs_skipped(self):
        networks = rate_limit.parse_networks(["1.2.3.0/24", "not-a-cidr", " 5.6.7.0/24 "])

        assert networks == [ipaddress.ip_network("1.2.3.0/24"), ipaddress.ip_network("5.6.7.0/24")]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TRUSTED_PROXY_CIDRS", '["203.0.113.0/24"]')
        monkeypatch.setattr(rate_limit, "get_settings", Settings)

        assert rate_limit.trusted_networks() == (ipaddress.ip_network("203.0.113.0/24"),)


class TestClientAddress:
    """X-Forwarded-For is only honored from trusted proxies."""

    @pytest.mark.parametrize("peer", ["127.0.0.1", "10.0.1.5", "172.17.0.1", "192.168.1.100", "::1"])
    def test_trusted_peer_forwards_leftmost(self, default_networks, peer):
        request = _request(peer, "198.51.100.7, 10.0.0.2")

        assert rate_limit.client_address(request, default_networks) == "198.51.100.7"

    @pytest.mark.parametrize("peer", ["8.8.8.8", "2001:db8::1"])
    def test_untrusted_peer_cannot_spoof(self, default_networks, peer):
        assert rate_limit.client_address(_request(peer, "1.1.1.1"), default_networks) == peer

    def test_trusted_peer_without_header(self, default_networks):
        assert rate_limit.client_address(_request("10.0.0.1"), default_networks) == "10.0.0.1"

    def test_unparseable_peer_used_as_is(self, default_networks):
        assert rate_limit.client_address(_request("testclient", "1.1.1.1"), default_networks) == "testclient"

    def test_key_uses_configured_networks(self, monkeypatch):
        monkeypatch.setenv("TRUSTED_PROXY_CIDRS", '["8.8.8.0/24"]')
        monkeypatch.setattr(rate_limit, "get_settings", Settings)

        assert rate_limit.rate_limit_key(_request("8.8.8.8", "1.1.1.1")) == "1.1.1.1"
        assert rate_limit.rate_limit_key(_request("10.0.0.1", "1.1.1.1")) == "10.0.0.1"


class TestEnabledFlag:

    @pytest.mark.parametrize("value", ["0", "false", "no"])
    def test_disabled_values(self, monkeypatch, value):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", value)

        assert Settings().rate_limit_enabled is False

    def test_enabled_by_default(self, monkeypatch):
        monkeypatch.delenv("RATE_LIMIT_ENABLED", raising=False)

        assert Settings().rate_limit_enabled is True

    def test_limiter_follows_settings(self):
        # Test runs set RATE_LIMIT_ENABLED=false before import
        assert rate_limit.limiter.enabled is False
