"""Store-resident configuration documents."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Column, String
from sqlmodel import Field, SQLModel


class Option(SQLModel, table=True):
    __tablename__ = "options"

    name: str = Field(sa_column=Column(String(64), primary_key=True))
    value: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
