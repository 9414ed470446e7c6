"""Authentication endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_session_claims
from core import (
    NotFound,
    ProvisionalSubject,
    SessionClaims,
    UpstreamFailure,
    issue_session_token,
)
from services.auth import (
    OAuthExchangeError,
    bind_existing,
    build_adapter,
    clear_session_cookie,
    generate_handle,
    gravatar_url,
    load_oauth_credentials,
    matchable_email,
    process_oauth_login,
    set_session_cookie,
    skip_bind,
)
from services.auth import identity_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class ReaderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    handle: str
    image: str | None = None
    is_owner: bool
    email_verified: bool | None = None


class MeResponse(ReaderResponse):
    provisional: bool = False


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    provider: str
    provider_account_id: str
    scope: str | None = None
    oauth_name: str | None = None
    oauth_email: str | None = None
    oauth_avatar: str | None = None
    oauth_handle: str | None = None
    created_at: datetime


class BindRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)


class SessionResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    reader: ReaderResponse


@router.get("/oauth/{provider}")
async def oauth_authorize(provider: str, session: AsyncSession = Depends(get_db)):
    credentials = await load_oauth_credentials(session)
    if provider == "github" and not credentials.github_configured:
        logger.error("GitHub OAuth is not configured")
        raise UpstreamFailure("GitHub OAuth is not configured")
    adapter = build_adapter(provider, credentials)
    return RedirectResponse(adapter.authorize_url(), status_code=status.HTTP_302_FOUND)


@router.get("/oauth/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: str = Query(min_length=1),
    session: AsyncSession = Depends(get_db),
):
    credentials = await load_oauth_credentials(session)
    if provider == "github" and not credentials.github_configured:
        raise UpstreamFailure("GitHub OAuth is not configured")
    adapter = build_adapter(provider, credentials)

    try:
        payload = await adapter.exchange(code)
    except OAuthExchangeError as exc:
        logger.error(
            "OAuth code exchange failed",
            extra={"provider": exc.provider, "reason": exc.reason},
        )
        raise UpstreamFailure(f"{provider} login failed: {exc.reason}") from exc

    resolution = await process_oauth_login(session, payload)
    token = issue_session_token(resolution.subject, resolution.is_owner)

    query = urlencode(
        {"token": token, "new_user": "true" if resolution.is_new_identity else "false"}
    )
    response = RedirectResponse(
        f"{credentials.frontend_url}/auth/callback?{query}",
        status_code=status.HTTP_302_FOUND,
    )
    set_session_cookie(response, token)
    return response


@router.get("/me", response_model=MeResponse)
async def read_me(
    claims: SessionClaims = Depends(get_session_claims),
    session: AsyncSession = Depends(get_db),
) -> MeResponse:
    if isinstance(claims.subject, ProvisionalSubject):
        account = await identity_store.get_account(session, claims.subject.account_id)
        if account is None:
            raise NotFound("Provider account not found")
        name = account.oauth_name or account.oauth_handle or "reader"
        email = account.oauth_email or ""
        return MeResponse(
            id=account.id,
            name=name,
            email=email,
            handle=generate_handle(account.oauth_handle or name),
            image=account.oauth_avatar or gravatar_url(email),
            is_owner=claims.is_owner,
            email_verified=matchable_email(email) is not None,
            provisional=True,
        )

    reader = await identity_store.get_reader(session, claims.sub)
    if reader is None:
        raise NotFound("Reader not found")
    return MeResponse.model_validate(reader)


@router.get("/accounts", response_model=list[AccountResponse])
async def list_accounts(
    claims: SessionClaims = Depends(get_session_claims),
    session: AsyncSession = Depends(get_db),
) -> list[AccountResponse]:
    accounts = await identity_store.list_accounts_for_owner(session, claims.sub)
    return [AccountResponse.model_validate(account) for account in accounts]


@router.get("/bindable-identities", response_model=list[ReaderResponse])
async def list_bindable_identities(
    claims: SessionClaims = Depends(get_session_claims),
    session: AsyncSession = Depends(get_db),
) -> list[ReaderResponse]:
    """Readers sharing a real email with one of the caller's provider accounts."""
    accounts = await identity_store.list_accounts_for_owner(session, claims.sub)
    emails = sorted(
        {email for account in accounts if (email := matchable_email(account.oauth_email))}
    )
    readers = await identity_store.find_readers_by_emails(
        session, emails, exclude_id=claims.sub
    )
    return [ReaderResponse.model_validate(reader) for reader in readers if not reader.is_owner]


@router.post("/bind-anonymous", response_model=SessionResponse)
async def bind_anonymous(
    payload: BindRequest,
    response: Response,
    claims: SessionClaims = Depends(get_session_claims),
    session: AsyncSession = Depends(get_db),
) -> SessionResponse:
    grant = await bind_existing(session, claims.subject, name=payload.name, email=payload.email)
    set_session_cookie(response, grant.token)
    return SessionResponse(token=grant.token, reader=ReaderResponse.model_validate(grant.reader))


@router.post("/skip-bind", response_model=SessionResponse)
async def skip_binding(
    response: Response,
    claims: SessionClaims = Depends(get_session_claims),
    session: AsyncSession = Depends(get_db),
) -> SessionResponse:
    grant = await skip_bind(session, claims.subject)
    set_session_cookie(response, grant.token)
    return SessionResponse(token=grant.token, reader=ReaderResponse.model_validate(grant.reader))


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(response: Response) -> dict[str, Any]:
    # Tokens are not revoked server-side; dropping the cookie ends the session.
    clear_session_cookie(response)
    return {"detail": "Logged out"}
