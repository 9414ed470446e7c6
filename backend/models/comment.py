"""Comment model and moderation states."""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text, func
from sqlalchemy import text as sa_text
from sqlmodel import Field, SQLModel

from .common import new_id, utcnow


class CommentState(IntEnum):
    UNREAD = 0
    READ = 1
    SPAM = 2
    PENDING = 3


PUBLIC_STATES = (CommentState.UNREAD, CommentState.READ)


class Comment(SQLModel, table=True):
    """Reader comment attached to a post, note or page."""

    __tablename__ = "comments"
    __table_args__ = (
        Index("ix_comments_ref_created_at", "ref_type", "ref_id", "created_at"),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    ref_id: str = Field(sa_column=Column(String(64), nullable=False))
    ref_type: str = Field(sa_column=Column(String(16), nullable=False))
    reader_id: str | None = Field(
        default=None, sa_column=Column(String(32), nullable=True, index=True)
    )
    author: str = Field(sa_column=Column(String(255), nullable=False))
    mail: str = Field(sa_column=Column(String(255), nullable=False))
    text: str = Field(sa_column=Column(Text, nullable=False))
    state: int = Field(
        default=int(CommentState.UNREAD),
        sa_column=Column(Integer, nullable=False, server_default=sa_text("0")),
    )
    parent_id: str | None = Field(
        default=None, sa_column=Column(String(32), nullable=True, index=True)
    )
    children: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    comments_index: int = Field(default=1, sa_column=Column(Integer, nullable=False))
    key: str = Field(sa_column=Column(String(255), nullable=False))
    ip: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    agent: str | None = Field(default=None, sa_column=Column(String(512), nullable=True))
    location: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    url: str | None = Field(default=None, sa_column=Column(String(1024), nullable=True))
    avatar: str | None = Field(default=None, sa_column=Column(String(1024), nullable=True))
    source: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    pin: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=sa_text("false")),
    )
    is_whispers: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=sa_text("false")),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False),
    )
