"""HTTP cookie helpers for session token transport."""

from __future__ import annotations

from typing import Literal

from fastapi import Response

from core import settings
from core.security import SESSION_TTL

SESSION_COOKIE = "auth_token"
COOKIE_PATH = "/"
COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "lax"
INSECURE_ENVIRONMENTS = frozenset({"local", "test"})


def cookie_secure() -> bool:
    """Secure unless running locally or explicitly allowed over plain HTTP."""
    return (
        settings.app_env.strip().lower() not in INSECURE_ENVIRONMENTS
        and not settings.allow_insecure_http_cookies
    )


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=cookie_secure(),
        samesite=COOKIE_SAMESITE,
        max_age=int(SESSION_TTL.total_seconds()),
        path=COOKIE_PATH,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE,
        path=COOKIE_PATH,
        secure=cookie_secure(),
        samesite=COOKIE_SAMESITE,
    )
