"""Shared contract for OAuth code-exchange adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from core import settings
from services.http_client import build_http_client


@dataclass(frozen=True)
class OAuthPayload:
    """Provider profile normalised for identity resolution.

    ``email`` is None whenever the provider did not disclose one.
    """

    provider: str
    provider_account_id: str
    name: str
    email: str | None
    avatar: str | None
    handle: str | None
    access_token: str
    scope: str | None


class OAuthExchangeError(Exception):
    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class OAuthAdapter(Protocol):
    provider: str

    def authorize_url(self) -> str: ...

    async def exchange(self, code: str) -> OAuthPayload: ...


def oauth_http_client() -> httpx.AsyncClient:
    return build_http_client(settings.oauth_timeout_seconds)


def blank_to_none(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None
