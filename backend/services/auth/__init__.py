"""Authentication domain services."""

from .avatars import gravatar_url
from .cookies import SESSION_COOKIE, clear_session_cookie, set_session_cookie
from .identity_resolution import (
    LoginResolution,
    SessionGrant,
    bind_existing,
    generate_handle,
    is_placeholder_email,
    matchable_email,
    placeholder_email,
    process_oauth_login,
    skip_bind,
)
from .oauth import (
    SUPPORTED_PROVIDERS,
    OAuthExchangeError,
    OAuthPayload,
    build_adapter,
)
from .oauth_config import OAuthCredentials, load_oauth_credentials, resolve_oauth_credentials

__all__ = [
    "SESSION_COOKIE",
    "clear_session_cookie",
    "set_session_cookie",
    "gravatar_url",
    "LoginResolution",
    "SessionGrant",
    "process_oauth_login",
    "bind_existing",
    "skip_bind",
    "generate_handle",
    "is_placeholder_email",
    "matchable_email",
    "placeholder_email",
    "SUPPORTED_PROVIDERS",
    "OAuthExchangeError",
    "OAuthPayload",
    "build_adapter",
    "OAuthCredentials",
    "load_oauth_credentials",
    "resolve_oauth_credentials",
]
