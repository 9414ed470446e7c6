"""GitHub OAuth adapter."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx

from ..oauth_config import OAuthCredentials
from .base import OAuthExchangeError, OAuthPayload, blank_to_none, oauth_http_client

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
TOKEN_URL = "https://github.com/login/oauth/access_token"
USER_URL = "https://api.github.com/user"
USER_AGENT = "inkwell-backend"
SCOPE = "user:email"


class GitHubAdapter:
    provider = "github"

    def __init__(self, credentials: OAuthCredentials) -> None:
        self.client_id = credentials.github_client_id
        self.client_secret = credentials.github_client_secret
        self.redirect_uri = f"{credentials.server_url}/api/v1/auth/oauth/github/callback"

    def authorize_url(self) -> str:
        query = urlencode(
            {"client_id": self.client_id, "redirect_uri": self.redirect_uri, "scope": SCOPE}
        )
        return f"{AUTHORIZE_URL}?{query}"

    async def exchange(self, code: str) -> OAuthPayload:
        async with oauth_http_client() as client:
            access_token, scope = await self._exchange_code(client, code)
            profile = await self._fetch_profile(client, access_token)

        account_id = profile.get("id")
        login = blank_to_none(profile.get("login"))
        if account_id is None or login is None:
            raise OAuthExchangeError(self.provider, "profile is missing id or login")

        return OAuthPayload(
            provider=self.provider,
            provider_account_id=str(account_id),
            name=blank_to_none(profile.get("name")) or login,
            # GitHub hides the address when the user keeps it private.
            email=blank_to_none(profile.get("email")),
            avatar=blank_to_none(profile.get("avatar_url")),
            handle=login,
            access_token=access_token,
            scope=scope,
        )

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> tuple[str, str | None]:
        try:
            response = await client.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise OAuthExchangeError(self.provider, f"token request failed: {exc}") from exc

        if response.status_code != 200:
            raise OAuthExchangeError(
                self.provider, f"token endpoint returned {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise OAuthExchangeError(self.provider, "token response is not JSON") from exc

        access_token = blank_to_none(body.get("access_token"))
        if access_token is None:
            reason = body.get("error_description") or body.get("error") or "no access token"
            raise OAuthExchangeError(self.provider, str(reason))
        return access_token, blank_to_none(body.get("scope"))

    async def _fetch_profile(self, client: httpx.AsyncClient, access_token: str) -> dict:
        try:
            response = await client.get(
                USER_URL,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/vnd.github+json",
                    "User-Agent": USER_AGENT,
                },
            )
        except httpx.HTTPError as exc:
            raise OAuthExchangeError(self.provider, f"profile request failed: {exc}") from exc

        if response.status_code != 200:
            logger.warning(
                "GitHub profile fetch rejected",
                extra={"status_code": response.status_code},
            )
            raise OAuthExchangeError(
                self.provider, f"profile endpoint returned {response.status_code}"
            )
        try:
            profile = response.json()
        except ValueError as exc:
            raise OAuthExchangeError(self.provider, "profile response is not JSON") from exc
        if not isinstance(profile, dict):
            raise OAuthExchangeError(self.provider, "profile response is not an object")
        return profile
