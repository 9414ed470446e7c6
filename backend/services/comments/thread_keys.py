"""Reply-tree keys and parent bookkeeping for new comments."""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Comment


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def _count(session: AsyncSession, *criteria: ColumnElement[bool]) -> int:
    result = await session.execute(select(func.count()).select_from(Comment).where(*criteria))
    return int(result.scalar_one())


async def compute_key(
    session: AsyncSession,
    *,
    ref_id: str,
    ref_type: str,
    parent: Comment | None,
) -> str:
    """Path key for a new comment: ``#n`` for roots, ``<parent key>#n`` for replies.

    ``n`` is one more than the number of existing siblings. Keys are never
    renumbered, so deletions can leave gaps.
    """
    if parent is None:
        roots = await _count(
            session,
            _eq(Comment.ref_id, ref_id),
            _eq(Comment.ref_type, ref_type),
            cast(ColumnElement[bool], cast(Any, Comment.parent_id).is_(None)),
        )
        return f"#{roots + 1}"

    siblings = await _count(session, _eq(Comment.parent_id, parent.id))
    return f"{parent.key}#{siblings + 1}"


async def next_comment_index(session: AsyncSession, *, ref_id: str, ref_type: str) -> int:
    total = await _count(session, _eq(Comment.ref_id, ref_id), _eq(Comment.ref_type, ref_type))
    return total + 1


def attach_child(parent: Comment, child_id: str) -> None:
    # Reassign so the JSON column is flagged dirty.
    parent.children = [*(parent.children or []), child_id]


__all__ = ["compute_key", "next_comment_index", "attach_child"]
