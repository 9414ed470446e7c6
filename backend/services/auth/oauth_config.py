"""OAuth client configuration resolution."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core import settings
from services.options import load_option

OAUTH_OPTION = "oauth"


@dataclass(frozen=True)
class OAuthCredentials:
    github_client_id: str
    github_client_secret: str
    server_url: str
    frontend_url: str
    qq_proxy_url: str

    @property
    def github_configured(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)


def _first_non_empty(*candidates: Any) -> str:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ""


def resolve_oauth_credentials(stored: Mapping[str, Any] | None) -> OAuthCredentials:
    """Merge stored OAuth options over environment settings.

    A non-empty stored value wins, then a non-empty environment value,
    otherwise the field is left empty.
    """
    stored = stored or {}
    github = stored.get("github")
    if not isinstance(github, Mapping):
        github = {}

    return OAuthCredentials(
        github_client_id=_first_non_empty(github.get("clientId"), settings.github_client_id),
        github_client_secret=_first_non_empty(
            github.get("clientSecret"), settings.github_client_secret
        ),
        server_url=_first_non_empty(settings.server_url).rstrip("/"),
        frontend_url=_first_non_empty(settings.frontend_url).rstrip("/"),
        qq_proxy_url=_first_non_empty(
            stored.get("qqProxyUrl"), settings.qq_oauth_proxy_url
        ).rstrip("/"),
    )


async def load_oauth_credentials(session: AsyncSession) -> OAuthCredentials:
    return resolve_oauth_credentials(await load_option(session, OAUTH_OPTION))


__all__ = [
    "OAUTH_OPTION",
    "OAuthCredentials",
    "resolve_oauth_credentials",
    "load_oauth_credentials",
]
