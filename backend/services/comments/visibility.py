"""Role-dependent comment visibility predicates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import and_, or_
from sqlalchemy.sql import ColumnElement

from models import PUBLIC_STATES, Comment, CommentState


@dataclass(frozen=True)
class Viewer:
    """Who is looking. ``reader_id`` is None for anonymous and provisional sessions."""

    reader_id: str | None = None
    is_owner: bool = False


ANONYMOUS = Viewer()


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _state_in(states: tuple[CommentState, ...]) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], cast(Any, Comment.state).in_([int(s) for s in states]))


def build_visibility_filter(
    *,
    ref_id: str,
    ref_type: str,
    viewer: Viewer,
) -> ColumnElement[bool]:
    """Return the WHERE clause selecting the comments ``viewer`` may see on a ref.

    The owner sees everything. Everyone sees public, non-whisper comments.
    A signed-in reader additionally sees their own whispers and their own
    comments still waiting for review, but never their own spam.
    """
    scope = and_(_eq(Comment.ref_id, ref_id), _eq(Comment.ref_type, ref_type))
    if viewer.is_owner and viewer.reader_id is not None:
        return scope

    public = and_(_state_in(PUBLIC_STATES), _eq(Comment.is_whispers, False))
    if viewer.reader_id is None:
        return and_(scope, public)

    own = and_(
        _eq(Comment.reader_id, viewer.reader_id),
        _state_in(PUBLIC_STATES + (CommentState.PENDING,)),
    )
    return and_(scope, or_(public, own))


__all__ = ["ANONYMOUS", "Viewer", "build_visibility_filter"]
