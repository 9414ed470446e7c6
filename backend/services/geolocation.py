"""Optional IP to coarse-location lookup."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

RegionSearch = Callable[[str], str]


class LocationLookup(Protocol):
    def lookup(self, ip: str) -> str | None: ...


class NullLocationLookup:
    """Used when no geolocation database is configured."""

    def lookup(self, ip: str) -> str | None:
        return None


def format_region(raw: str) -> str | None:
    """Turn a ``country|area|province|city|isp`` record into display text.

    Empty and ``0`` parts are unknown and dropped.
    """
    parts = [part for part in raw.split("|") if part and part != "0"]
    return " ".join(parts) or None


class RegionLookup:
    """Wraps region database searchers, one per address family."""

    def __init__(self, ipv4_search: RegionSearch, ipv6_search: RegionSearch) -> None:
        self.ipv4_search = ipv4_search
        self.ipv6_search = ipv6_search

    def lookup(self, ip: str) -> str | None:
        search = self.ipv6_search if ":" in ip else self.ipv4_search
        try:
            raw = search(ip)
        except Exception:
            logger.warning("IP location lookup failed", extra={"ip": ip}, exc_info=True)
            return None
        return format_region(raw)


_cached_lookup: LocationLookup = NullLocationLookup()


def get_location_lookup() -> LocationLookup:
    return _cached_lookup


def set_location_lookup(lookup: LocationLookup | None) -> None:
    global _cached_lookup
    _cached_lookup = lookup or NullLocationLookup()


__all__ = [
    "LocationLookup",
    "NullLocationLookup",
    "RegionLookup",
    "format_region",
    "get_location_lookup",
    "set_location_lookup",
]
