"""Rate limiting for the PhysioFit backend.

Each client gets its own budget on the chat endpoint, keyed by IP. The
X-Forwarded-For header is honored only when the direct peer is one of
the configured trusted proxies, so clients cannot spoof their key.
"""

import ipaddress
import logging
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from .config import get_settings

logger = logging.getLogger("physiofit.rate_limit")

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache
def trusted_proxy_networks(cidrs: tuple[str, ...]) -> tuple[IPNetwork, ...]:
    """Parse proxy CIDRs, skipping (and logging) invalid entries."""
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr.strip(), strict=False))
        except ValueError:
            logger.warning("Ignoring invalid trusted proxy CIDR: %s", cidr)
    return tuple(networks)


def is_trusted_proxy(ip_str: str, networks: tuple[IPNetwork, ...]) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in networks)


def get_client_ip(request: Request) -> str:
    """Client IP for rate limiting: leftmost forwarded address behind a trusted proxy."""
    direct_ip = get_remote_address(request)
    networks = trusted_proxy_networks(tuple(get_settings().trusted_proxy_cidrs))
    if not is_trusted_proxy(direct_ip, networks):
        return direct_ip
    forwarded_for = request.headers.get("x-forwarded-for", "")
    client_ip = forwarded_for.split(",")[0].strip()
    return client_ip or direct_ip


def chat_rate_limit() -> str:
    """Per-client limit for the chat endpoint, e.g. "30/minute"."""
    return get_settings().chat_rate_limit


limiter = Limiter(key_func=get_client_ip)
