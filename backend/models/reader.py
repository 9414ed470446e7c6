"""Reader identity model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func, text
from sqlmodel import Field, SQLModel

from .common import new_id, utcnow

OWNER_SLOT = 1


class Reader(SQLModel, table=True):
    """Verified end-user identity. Exactly one row may carry the owner slot."""

    __tablename__ = "readers"

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    email: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    handle: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    image: str | None = Field(default=None, sa_column=Column(String(1024), nullable=True))
    is_owner: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=text("false")),
    )
    # NULL for everyone except the owner; the unique index makes the
    # first-owner election atomic.
    owner_slot: int | None = Field(
        default=None, sa_column=Column(Integer, nullable=True, unique=True)
    )
    email_verified: bool | None = Field(
        default=None, sa_column=Column(Boolean, nullable=True)
    )
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
