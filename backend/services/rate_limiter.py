"""Redis-backed rate limiting utilities."""

from __future__ import annotations

import time
from functools import lru_cache
from typing import Callable, Iterable, Protocol, runtime_checkable

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.types import ASGIApp

from core import settings, verify_session_token

from .auth.cookies import SESSION_COOKIE
from .client_ip import resolve_client_ip


@runtime_checkable
class SupportsRateLimitClient(Protocol):
    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> None: ...


AUTH_PATH_PREFIX = "/api/v1/auth"


def _extract_subject_from_token(token: str) -> str | None:
    try:
        claims = verify_session_token(token)
    except HTTPException:
        return None
    return claims.sub or None


def _extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None

    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = value.strip()
    return token or None


def _extract_authenticated_client_identifier(request: Request) -> str | None:
    for token in (_extract_bearer_token(request), request.cookies.get(SESSION_COOKIE)):
        if not token:
            continue
        subject = _extract_subject_from_token(token)
        if subject:
            return f"subject:{subject}"
    return None


def default_client_identifier(request: Request) -> str:
    """Resolve a stable client identifier for rate limiting."""
    authenticated_identifier = _extract_authenticated_client_identifier(request)
    if authenticated_identifier is not None:
        return authenticated_identifier

    # Forwarded headers only count when the peer is a configured proxy.
    return resolve_client_ip(request) or "anonymous"


class RateLimiter:
    """Simple fixed-window rate limiter backed by Redis."""

    def __init__(
        self,
        redis_client: SupportsRateLimitClient,
        limit: int,
        window_seconds: int,
        prefix: str = "rate-limit",
    ) -> None:
        self.redis = redis_client
        self.limit = max(limit, 0)
        self.window_seconds = max(window_seconds, 0)
        self.prefix = prefix

    async def allow(self, key: str) -> bool:
        """Return True when the request should be allowed, False if limited."""
        if self.limit == 0 or self.window_seconds == 0:
            return True

        bucket = int(time.time()) // self.window_seconds
        redis_key = f"{self.prefix}:{key}:{bucket}"

        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, self.window_seconds)
        return count <= self.limit


@lru_cache
def get_redis_client() -> SupportsRateLimitClient:
    """Return a cached async Redis client."""
    return Redis.from_url(settings.redis_url, decode_responses=False)


_cached_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Singleton accessor for the shared rate limiter."""
    global _cached_rate_limiter
    if _cached_rate_limiter is None:
        _cached_rate_limiter = RateLimiter(
            redis_client=get_redis_client(),
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _cached_rate_limiter


def set_rate_limiter(limiter: RateLimiter | None) -> None:
    """Override the cached rate limiter (primarily for tests)."""
    global _cached_rate_limiter
    _cached_rate_limiter = limiter


class RateLimitMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that enforces the configured rate limits."""

    def __init__(
        self,
        app: ASGIApp,
        limiter_factory: Callable[[], RateLimiter | None],
        exempt_paths: Iterable[str] | None = None,
        client_identifier: Callable[[Request], str] | None = None,
    ) -> None:
        super().__init__(app)
        self.limiter_factory = limiter_factory
        self.exempt_paths = set(exempt_paths or ())
        self.client_identifier = client_identifier or default_client_identifier

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        path = request.url.path
        if path in self.exempt_paths:
            return await call_next(request)

        limiter = self._get_limiter()
        if limiter is None:
            if _is_auth_path(path):
                return _unavailable()
            return await call_next(request)

        client_key = self.client_identifier(request) or "anonymous"
        try:
            is_allowed = await limiter.allow(client_key)
        except Exception:
            if _is_auth_path(path):
                return _unavailable()
            return await call_next(request)

        if not is_allowed:
            return JSONResponse(
                {"detail": "Too Many Requests"},
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            )

        return await call_next(request)

    def _get_limiter(self) -> RateLimiter | None:
        try:
            return self.limiter_factory()
        except Exception:  # pragma: no cover - misconfigured Redis URL
            return None


def _unavailable() -> JSONResponse:
    return JSONResponse(
        {"detail": "Service unavailable"},
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


def _is_auth_path(path: str) -> bool:
    return path == AUTH_PATH_PREFIX or path.startswith(f"{AUTH_PATH_PREFIX}/")
