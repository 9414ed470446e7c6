"""Published content rows observed by the change feed.

Only the fields used as cache and revalidation keys are modelled here.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlmodel import Field, SQLModel

from .common import new_id, utcnow


class Post(SQLModel, table=True):
    __tablename__ = "posts"

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    slug: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    title: str = Field(sa_column=Column(String(255), nullable=False))
    text: str = Field(default="", sa_column=Column(Text, nullable=False))
    category_id: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    modified_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), onupdate=utcnow, nullable=False
        ),
    )


class Note(SQLModel, table=True):
    __tablename__ = "notes"

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    nid: int = Field(sa_column=Column(Integer, nullable=False, unique=True))
    title: str = Field(sa_column=Column(String(255), nullable=False))
    text: str = Field(default="", sa_column=Column(Text, nullable=False))


class Page(SQLModel, table=True):
    __tablename__ = "pages"

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    slug: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    title: str = Field(sa_column=Column(String(255), nullable=False))
    text: str = Field(default="", sa_column=Column(Text, nullable=False))


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    slug: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
