"""QQ OAuth adapter, reached through the login proxy service."""

from __future__ import annotations

from urllib.parse import quote

import httpx

from ..oauth_config import OAuthCredentials
from .base import OAuthExchangeError, OAuthPayload, blank_to_none, oauth_http_client


class QQAdapter:
    """The proxy hands back a one-time code that doubles as the access token."""

    provider = "qq"

    def __init__(self, credentials: OAuthCredentials) -> None:
        self.proxy_url = credentials.qq_proxy_url
        self.return_url = f"{credentials.server_url}/api/v1/auth/oauth/qq/callback"

    def authorize_url(self) -> str:
        return (
            f"{self.proxy_url}/oauth/qq/authorize"
            f"?redirect=true&return_url={quote(self.return_url, safe='')}"
        )

    async def exchange(self, code: str) -> OAuthPayload:
        async with oauth_http_client() as client:
            try:
                response = await client.get(f"{self.proxy_url}/user/get", params={"code": code})
            except httpx.HTTPError as exc:
                raise OAuthExchangeError(self.provider, f"profile request failed: {exc}") from exc

        if response.status_code != 200:
            raise OAuthExchangeError(
                self.provider, f"profile endpoint returned {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise OAuthExchangeError(self.provider, "profile response is not JSON") from exc

        if body.get("status") != "success" or not isinstance(body.get("data"), dict):
            raise OAuthExchangeError(self.provider, str(body.get("message") or "login rejected"))

        data = body["data"]
        openid = blank_to_none(data.get("qq_openid"))
        if openid is None:
            raise OAuthExchangeError(self.provider, "profile is missing openid")
        nickname = blank_to_none(data.get("nickname")) or f"qq_{openid[:8]}"

        return OAuthPayload(
            provider=self.provider,
            provider_account_id=openid,
            name=nickname,
            email=None,
            avatar=blank_to_none(data.get("avatar")),
            handle=None,
            access_token=code,
            scope=None,
        )
