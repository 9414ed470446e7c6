"""Core configuration, security and error primitives."""

from .config import Settings, settings
from .errors import (
    AuthFailure,
    BadInput,
    DataConsistencyError,
    ExpiredToken,
    InvalidToken,
    MissingCredentials,
    NotFound,
    PermissionDenied,
    UpstreamFailure,
)
from .logging import setup_logging
from .security import (
    ProvisionalSubject,
    ResolvedSubject,
    SessionClaims,
    Subject,
    issue_session_token,
    verify_session_token,
)

__all__ = [
    "Settings",
    "settings",
    "setup_logging",
    "AuthFailure",
    "MissingCredentials",
    "InvalidToken",
    "ExpiredToken",
    "PermissionDenied",
    "NotFound",
    "BadInput",
    "UpstreamFailure",
    "DataConsistencyError",
    "ProvisionalSubject",
    "ResolvedSubject",
    "SessionClaims",
    "Subject",
    "issue_session_token",
    "verify_session_token",
]
