"""Outbound HTTP client factory."""

from __future__ import annotations

import httpx

_transport_override: httpx.AsyncBaseTransport | None = None


def set_http_transport(transport: httpx.AsyncBaseTransport | None) -> None:
    """Route every outbound call through ``transport`` (primarily for tests)."""
    global _transport_override
    _transport_override = transport


def build_http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=_transport_override, timeout=timeout)


__all__ = ["build_http_client", "set_http_transport"]
