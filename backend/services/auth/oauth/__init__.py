"""OAuth provider adapters."""

from __future__ import annotations

from core import BadInput

from ..oauth_config import OAuthCredentials
from .base import (
    OAuthAdapter,
    OAuthExchangeError,
    OAuthPayload,
    oauth_http_client,
)
from .github import GitHubAdapter
from .qq import QQAdapter

SUPPORTED_PROVIDERS = ("github", "qq")


def build_adapter(provider: str, credentials: OAuthCredentials) -> OAuthAdapter:
    if provider == "github":
        return GitHubAdapter(credentials)
    if provider == "qq":
        return QQAdapter(credentials)
    raise BadInput(f"Unsupported OAuth provider: {provider}")


__all__ = [
    "SUPPORTED_PROVIDERS",
    "OAuthAdapter",
    "OAuthExchangeError",
    "OAuthPayload",
    "GitHubAdapter",
    "QQAdapter",
    "build_adapter",
    "oauth_http_client",
]
