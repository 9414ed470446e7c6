"""HTTP-mapped error taxonomy shared by services and routes."""

from __future__ import annotations

from fastapi import HTTPException, status


class AuthFailure(HTTPException):
    default_detail = "Not authenticated"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail or self.default_detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class MissingCredentials(AuthFailure):
    default_detail = "Missing session token"


class InvalidToken(AuthFailure):
    default_detail = "Invalid session token"


class ExpiredToken(AuthFailure):
    default_detail = "Session token expired"


class PermissionDenied(HTTPException):
    def __init__(self, detail: str = "Owner privileges required") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadInput(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class UpstreamFailure(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class DataConsistencyError(HTTPException):
    """A stored reference points at a record that no longer exists."""

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


__all__ = [
    "AuthFailure",
    "MissingCredentials",
    "InvalidToken",
    "ExpiredToken",
    "PermissionDenied",
    "NotFound",
    "BadInput",
    "UpstreamFailure",
    "DataConsistencyError",
]
