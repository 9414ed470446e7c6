"""Session token issuing and verification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import jwt

from .config import settings
from .errors import ExpiredToken, InvalidToken

ALGORITHM = "HS256"
SESSION_TTL = timedelta(days=7)

SubjectKind = Literal["reader", "provisional"]


@dataclass(frozen=True)
class ResolvedSubject:
    """Session subject that points at an existing Reader."""

    reader_id: str

    @property
    def id(self) -> str:
        return self.reader_id

    @property
    def kind(self) -> SubjectKind:
        return "reader"


@dataclass(frozen=True)
class ProvisionalSubject:
    """Session subject for a login that has not been bound to a Reader yet.

    The id is the ProviderAccount created for that login.
    """

    account_id: str

    @property
    def id(self) -> str:
        return self.account_id

    @property
    def kind(self) -> SubjectKind:
        return "provisional"


Subject = ResolvedSubject | ProvisionalSubject


@dataclass(frozen=True)
class SessionClaims:
    subject: Subject
    is_owner: bool
    issued_at: int
    expires_at: int

    @property
    def sub(self) -> str:
        return self.subject.id

    def is_expired(self, now: datetime | None = None) -> bool:
        current = int((now or datetime.now(timezone.utc)).timestamp())
        return current >= self.expires_at


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _build_subject(kind: Any, sub: Any) -> Subject:
    if not isinstance(sub, str) or not sub:
        raise InvalidToken()
    try:
        bytes.fromhex(sub)
    except ValueError as exc:
        raise InvalidToken() from exc
    if kind == "reader":
        return ResolvedSubject(reader_id=sub)
    if kind == "provisional":
        return ProvisionalSubject(account_id=sub)
    raise InvalidToken()


def issue_session_token(
    subject: Subject,
    is_owner: bool,
    *,
    now: datetime | None = None,
) -> str:
    """Sign a session token for the subject, valid for seven days."""
    issued = _now(now)
    iat = int(issued.timestamp())
    payload = {
        "sub": subject.id,
        "kind": subject.kind,
        "is_owner": bool(is_owner),
        "iat": iat,
        "exp": iat + int(SESSION_TTL.total_seconds()),
    }
    return jwt.encode(payload, settings.session_secret, algorithm=ALGORITHM)


def verify_session_token(token: str, *, now: datetime | None = None) -> SessionClaims:
    """Decode a session token.

    Raises InvalidToken for signature or structure problems and ExpiredToken
    once the expiry has passed. Expiry is checked again against ``now`` after
    the library decode so an injected clock is honoured.
    """
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[ALGORITHM],
            options={"require": ["sub", "iat", "exp"], "verify_iat": False},
        )
    except jwt.ExpiredSignatureError as exc:
        raise ExpiredToken() from exc
    except jwt.PyJWTError as exc:
        raise InvalidToken() from exc

    subject = _build_subject(payload.get("kind"), payload.get("sub"))
    is_owner = payload.get("is_owner")
    if not isinstance(is_owner, bool):
        raise InvalidToken()

    try:
        claims = SessionClaims(
            subject=subject,
            is_owner=is_owner,
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidToken() from exc

    if claims.is_expired(now):
        raise ExpiredToken()
    return claims


__all__ = [
    "ALGORITHM",
    "SESSION_TTL",
    "ResolvedSubject",
    "ProvisionalSubject",
    "Subject",
    "SessionClaims",
    "issue_session_token",
    "verify_session_token",
]
