"""Rate limiting for the PeerAssist backend.

Requests are keyed by client IP. ``X-Forwarded-For`` is honoured only when
the direct peer falls inside ``TRUSTED_PROXY_CIDRS``; other peers are
keyed by the connection address.
"""

import ipaddress
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings
from .logging_config import get_logger

logger = get_logger("rate_limit")

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def parse_networks(cidrs: list[str]) -> list[Network]:
    """Parse CIDR strings, skipping (and logging) malformed entries."""
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr.strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


@lru_cache
def trusted_networks() -> tuple[Network, ...]:
    return tuple(parse_networks(get_settings().trusted_proxy_cidrs))


def client_address(request, networks) -> str:
    """Address a request is limited under, given the trusted proxy networks."""
    peer = get_remote_address(request)
    try:
        peer_addr = ipaddress.ip_address(peer)
    except ValueError:
        return peer
    if not any(peer_addr in network for network in networks):
        return peer

    forwarded = request.headers.get("x-forwarded-for", "")
    origin = forwarded.split(",")[0].strip()
    return origin or peer


def rate_limit_key(request) -> str:
    return client_address(request, trusted_networks())


limiter = Limiter(key_func=rate_limit_key, enabled=get_settings().rate_limit_enabled)
