"""End-to-end tests for authentication endpoints."""

from collections.abc import Iterator
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from core import ProvisionalSubject, ResolvedSubject, verify_session_token
from core.config import Settings, settings
from factories import create_account, create_reader, provisional_headers, reader_headers
from services.auth.oauth.github import TOKEN_URL, USER_URL
from services.http_client import set_http_transport
from services.options import save_option


@pytest.fixture()
def github_login() -> Iterator[dict]:
    """Configure GitHub credentials and serve the profile stored in the returned dict."""
    original = (settings.github_client_id, settings.github_client_secret)
    settings.github_client_id = "client"
    settings.github_client_secret = "secret"
    profile: dict = {"id": 999, "login": "octocat", "name": None, "email": ""}

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "gho_abc", "scope": "user:email"})
        if str(request.url) == USER_URL:
            return httpx.Response(200, json=profile)
        return httpx.Response(404)

    set_http_transport(httpx.MockTransport(handler))
    yield profile
    settings.github_client_id, settings.github_client_secret = original


def _callback_params(response: httpx.Response) -> dict[str, str]:
    location = urlparse(response.headers["location"])
    assert location.path == "/auth/callback"
    return {key: values[0] for key, values in parse_qs(location.query).items()}


@pytest.mark.asyncio
async def test_oauth_redirect_points_at_github(async_client, github_login):
    response = await async_client.get("/api/v1/auth/oauth/github")

    assert response.status_code == 302
    assert response.headers["location"].startswith("https://github.com/login/oauth/authorize?")


@pytest.mark.asyncio
async def test_oauth_redirect_fails_when_github_is_unconfigured(async_client):
    original = (settings.github_client_id, settings.github_client_secret)
    settings.github_client_id = ""
    settings.github_client_secret = ""
    try:
        response = await async_client.get("/api/v1/auth/oauth/github")
    finally:
        settings.github_client_id, settings.github_client_secret = original

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_oauth_redirect_uses_stored_client_id(async_client, github_login, db_session):
    await save_option(db_session, "oauth", {"github": {"clientId": "from-store"}})

    response = await async_client.get("/api/v1/auth/oauth/github")

    query = parse_qs(urlparse(response.headers["location"]).query)
    assert query["client_id"] == ["from-store"]


@pytest.mark.asyncio
async def test_unsupported_provider_is_rejected(async_client):
    response = await async_client.get("/api/v1/auth/oauth/gitlab")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_callback_issues_provisional_session(async_client, github_login):
    response = await async_client.get(
        "/api/v1/auth/oauth/github/callback", params={"code": "abc"}
    )

    assert response.status_code == 302
    params = _callback_params(response)
    assert params["new_user"] == "true"
    claims = verify_session_token(params["token"])
    assert isinstance(claims.subject, ProvisionalSubject)
    assert claims.is_owner is True
    assert "auth_token=" in response.headers["set-cookie"]
    assert "httponly" in response.headers["set-cookie"].lower()


@pytest.mark.asyncio
async def test_callback_for_returning_login_is_not_new(async_client, github_login):
    first = _callback_params(
        await async_client.get("/api/v1/auth/oauth/github/callback", params={"code": "abc"})
    )
    second = _callback_params(
        await async_client.get("/api/v1/auth/oauth/github/callback", params={"code": "abc"})
    )

    assert second["new_user"] == "false"
    assert verify_session_token(second["token"]).sub == verify_session_token(first["token"]).sub


@pytest.mark.asyncio
async def test_callback_exchange_failure_is_upstream_error(async_client, github_login):
    set_http_transport(httpx.MockTransport(lambda request: httpx.Response(502)))

    response = await async_client.get(
        "/api/v1/auth/oauth/github/callback", params={"code": "abc"}
    )

    assert response.status_code == 500
    assert "github login failed" in response.json()["detail"]


@pytest.mark.asyncio
async def test_skip_bind_flow_creates_reader(async_client, github_login):
    params = _callback_params(
        await async_client.get("/api/v1/auth/oauth/github/callback", params={"code": "abc"})
    )
    headers = {"Authorization": f"Bearer {params['token']}"}

    me = await async_client.get("/api/v1/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["provisional"] is True
    assert me.json()["name"] == "octocat"

    response = await async_client.post("/api/v1/auth/skip-bind", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["reader"]["name"] == "octocat"
    assert data["reader"]["email_verified"] is False
    assert data["reader"]["is_owner"] is True
    assert verify_session_token(data["token"]).subject == ResolvedSubject(
        reader_id=data["reader"]["id"]
    )

    me = await async_client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {data['token']}"}
    )
    assert me.json()["id"] == data["reader"]["id"]
    assert me.json()["provisional"] is False


@pytest.mark.asyncio
async def test_bind_anonymous_flow(async_client, github_login, db_session: AsyncSession):
    await create_reader(db_session, name="Owner", email="owner@example.com", is_owner=True)
    target = await create_reader(db_session, name="Anon", email="anon@example.com")
    params = _callback_params(
        await async_client.get("/api/v1/auth/oauth/github/callback", params={"code": "abc"})
    )

    response = await async_client.post(
        "/api/v1/auth/bind-anonymous",
        json={"name": "Anon", "email": "anon@example.com"},
        headers={"Authorization": f"Bearer {params['token']}"},
    )

    assert response.status_code == 200
    assert response.json()["reader"]["id"] == target.id
    accounts = await async_client.get(
        "/api/v1/auth/accounts",
        headers={"Authorization": f"Bearer {response.json()['token']}"},
    )
    assert [account["provider_account_id"] for account in accounts.json()] == ["999"]


@pytest.mark.asyncio
async def test_bind_anonymous_with_unknown_identity_is_not_found(
    async_client, db_session: AsyncSession
):
    account = await create_account(db_session)

    response = await async_client.post(
        "/api/v1/auth/bind-anonymous",
        json={"name": "Nobody", "email": "nobody@example.com"},
        headers=provisional_headers(account),
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_bindable_identities_lists_readers_sharing_email(
    async_client, db_session: AsyncSession
):
    await create_reader(db_session, name="Owner", email="shared@example.com", is_owner=True)
    anon = await create_reader(db_session, name="Anon", email="shared@example.com")
    await create_reader(db_session, name="Other", email="other@example.com")
    account = await create_account(db_session, email="shared@example.com")

    response = await async_client.get(
        "/api/v1/auth/bindable-identities", headers=provisional_headers(account)
    )

    assert response.status_code == 200
    assert [reader["id"] for reader in response.json()] == [anon.id]


@pytest.mark.asyncio
async def test_me_requires_credentials(async_client):
    response = await async_client.get("/api/v1/auth/me")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_rejects_invalid_token(async_client):
    response = await async_client.get(
        "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_accepts_session_cookie(async_client, db_session: AsyncSession):
    reader = await create_reader(db_session)
    token = reader_headers(reader)["Authorization"].removeprefix("Bearer ")
    async_client.cookies.set("auth_token", token)

    response = await async_client.get("/api/v1/auth/me")

    assert response.status_code == 200
    assert response.json()["email"] == reader.email


@pytest.mark.asyncio
async def test_logout_clears_cookie(async_client):
    response = await async_client.post("/api/v1/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"detail": "Logged out"}
    assert "auth_token=" in response.headers["set-cookie"]
    assert "max-age=0" in response.headers["set-cookie"].lower()


@pytest.mark.asyncio
async def test_session_cookie_is_secure_outside_local_environments(
    async_client, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setattr(settings, "app_env", "production")
    secure = await async_client.post("/api/v1/auth/logout")

    monkeypatch.setattr(settings, "app_env", "test")
    local = await async_client.post("/api/v1/auth/logout")

    assert "secure" in secure.headers["set-cookie"].lower()
    assert "secure" not in local.headers["set-cookie"].lower()


def test_settings_default_to_production() -> None:
    assert Settings.model_fields["app_env"].default == "production"
