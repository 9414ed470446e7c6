"""OAuth provider linkage model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint, func
from sqlmodel import Field, SQLModel

from .common import new_id, utcnow


class ProviderAccount(SQLModel, table=True):
    """Link between one external OAuth identity and its owner.

    ``owner_id`` names a Reader, or the account's own id while the login is
    still provisional.
    """

    __tablename__ = "provider_accounts"
    __table_args__ = (
        UniqueConstraint(
            "provider",
            "provider_account_id",
            name="uq_provider_accounts_provider_account",
        ),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    owner_id: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    provider: str = Field(sa_column=Column(String(32), nullable=False))
    provider_account_id: str = Field(sa_column=Column(String(255), nullable=False))
    access_token: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    scope: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    oauth_name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    oauth_email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    oauth_avatar: str | None = Field(default=None, sa_column=Column(String(1024), nullable=True))
    oauth_handle: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=utcnow,
            nullable=False,
        ),
    )
