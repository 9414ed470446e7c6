"""Client address resolution behind trusted proxies."""

from __future__ import annotations

from functools import lru_cache
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network, ip_address, ip_network

from starlette.requests import Request

from core import settings


def _parse_networks() -> tuple[IPv4Network | IPv6Network, ...]:
    networks: list[IPv4Network | IPv6Network] = []
    for cidr in settings.rate_limit_trusted_proxies:
        try:
            networks.append(ip_network(cidr, strict=False))
        except ValueError as exc:  # pragma: no cover - invalid configuration
            raise ValueError(f"Invalid CIDR in RATE_LIMIT_TRUSTED_PROXIES: {cidr}") from exc
    return tuple(networks)


@lru_cache
def trusted_proxy_networks() -> tuple[IPv4Network | IPv6Network, ...]:
    return _parse_networks()


def _forwarded_ip(request: Request) -> str | None:
    for header in settings.rate_limit_ip_headers:
        value = request.headers.get(header)
        if not value:
            continue
        for candidate in value.split(","):
            ip_candidate = candidate.strip()
            if not ip_candidate:
                continue
            try:
                ip_address(ip_candidate)
            except ValueError:
                continue
            return ip_candidate
    return None


def _remote_ip(request: Request) -> tuple[str | None, IPv4Address | IPv6Address | None]:
    host = request.client.host if request.client else None
    if not host:
        return None, None
    try:
        addr = ip_address(host)
    except ValueError:
        return host, None
    return host, addr


def is_trusted_proxy(remote_ip: IPv4Address | IPv6Address | None) -> bool:
    if remote_ip is None:
        return False
    return any(remote_ip in network for network in trusted_proxy_networks())


def resolve_client_ip(request: Request) -> str | None:
    """Peer address, or the forwarded one when the peer is a trusted proxy."""
    remote_host, remote_ip = _remote_ip(request)
    if is_trusted_proxy(remote_ip):
        forwarded = _forwarded_ip(request)
        if forwarded:
            return forwarded
    return remote_host


__all__ = ["resolve_client_ip", "is_trusted_proxy", "trusted_proxy_networks"]
