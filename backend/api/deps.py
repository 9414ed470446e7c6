"""Shared FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core import (
    MissingCredentials,
    PermissionDenied,
    ResolvedSubject,
    SessionClaims,
    verify_session_token,
)
from db.session import get_session
from services.auth import SESSION_COOKIE


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def _token_from_request(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    cookie = request.cookies.get(SESSION_COOKIE)
    return cookie or None


async def get_session_claims(request: Request) -> SessionClaims:
    token = _token_from_request(request)
    if token is None:
        raise MissingCredentials()
    return verify_session_token(token)


async def get_optional_claims(request: Request) -> SessionClaims | None:
    """Claims for a valid token; a missing or unusable token reads as anonymous."""
    token = _token_from_request(request)
    if token is None:
        return None
    try:
        return verify_session_token(token)
    except HTTPException:
        return None


async def get_reader_claims(
    claims: SessionClaims = Depends(get_session_claims),
) -> SessionClaims:
    if not isinstance(claims.subject, ResolvedSubject):
        raise PermissionDenied("Finish binding or skip binding first")
    return claims


async def require_owner(claims: SessionClaims = Depends(get_reader_claims)) -> SessionClaims:
    if not claims.is_owner:
        raise PermissionDenied()
    return claims
