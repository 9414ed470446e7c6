"""Comment creation, listing and moderation-flag operations."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import (
    AuthFailure,
    BadInput,
    NotFound,
    PermissionDenied,
    ResolvedSubject,
    SessionClaims,
)
from models import Comment, CommentState, Reader
from services.auth import generate_handle, gravatar_url
from services.auth.identity_store import find_or_create_anonymous_reader, get_reader
from services.geolocation import LocationLookup
from services.options import load_option
from services.turnstile import TurnstileVerifier

from .moderation import ModerationDispatcher
from .spam import COMMENT_OPTIONS
from .thread_keys import attach_child, compute_key, next_comment_index
from .visibility import Viewer, build_visibility_filter

logger = logging.getLogger(__name__)

REF_TYPES = frozenset({"posts", "notes", "pages"})
_OBJECT_ID = re.compile(r"^[0-9a-f]{32}$")
OAUTH_SOURCE = "oauth"


def _asc(column: Any) -> Any:
    return cast(Any, column).asc()


def require_object_id(value: str, label: str) -> str:
    normalized = value.strip().lower()
    if not _OBJECT_ID.fullmatch(normalized):
        raise BadInput(f"Invalid {label}")
    return normalized


def require_ref_type(value: str) -> str:
    if value not in REF_TYPES:
        raise BadInput(f"Unsupported ref type: {value}")
    return value


def viewer_from_claims(claims: SessionClaims | None) -> Viewer:
    if claims is None or not isinstance(claims.subject, ResolvedSubject):
        return Viewer()
    return Viewer(reader_id=claims.subject.reader_id, is_owner=claims.is_owner)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class CommentDraft:
    ref_id: str
    ref_type: str
    text: str
    author: str | None = None
    mail: str | None = None
    url: str | None = None
    parent_id: str | None = None
    turnstile_token: str | None = None


@dataclass(frozen=True)
class RequestContext:
    ip: str | None = None
    agent: str | None = None


@dataclass(frozen=True)
class _Attribution:
    reader_id: str
    author: str
    mail: str
    avatar: str
    source: str | None


@dataclass
class CommentNode:
    comment: Comment
    is_admin: bool
    avatar: str | None
    children: list[CommentNode] = field(default_factory=list)


async def _attribute_signed_in(
    session: AsyncSession, reader_id: str, draft: CommentDraft
) -> _Attribution:
    reader = await get_reader(session, reader_id)
    if reader is None:
        raise AuthFailure("Reader no longer exists")
    mail = _clean(draft.mail) or reader.email
    return _Attribution(
        reader_id=reader.id,
        author=_clean(draft.author) or reader.name,
        mail=mail,
        avatar=reader.image or gravatar_url(mail),
        source=OAUTH_SOURCE,
    )


async def _attribute_anonymous(
    session: AsyncSession,
    draft: CommentDraft,
    *,
    verifier: TurnstileVerifier,
    context: RequestContext,
) -> _Attribution:
    author = _clean(draft.author)
    if author is None:
        raise BadInput("Anonymous comments require a name")
    mail = _clean(draft.mail)
    if mail is None:
        raise BadInput("Anonymous comments require an email")

    if verifier.enabled:
        token = _clean(draft.turnstile_token)
        if token is None:
            raise BadInput("Human verification token is required")
        if not await verifier.verify(token, context.ip):
            raise BadInput("Human verification failed")

    avatar = gravatar_url(mail)
    reader = await find_or_create_anonymous_reader(
        session,
        name=author,
        email=mail,
        handle=generate_handle(author) or "anonymous",
        image=avatar,
    )
    return _Attribution(reader_id=reader.id, author=author, mail=mail, avatar=avatar, source=None)


async def _load_parent(
    session: AsyncSession, parent_id: str | None, *, ref_id: str, ref_type: str
) -> Comment | None:
    if parent_id is None:
        return None
    parent = await session.get(Comment, require_object_id(parent_id, "parent id"))
    if parent is None or parent.ref_id != ref_id or parent.ref_type != ref_type:
        # Replies to unknown parents become root comments.
        return None
    return parent


async def create_comment(
    session: AsyncSession,
    draft: CommentDraft,
    *,
    claims: SessionClaims | None,
    context: RequestContext,
    dispatcher: ModerationDispatcher,
    verifier: TurnstileVerifier,
    location_lookup: LocationLookup,
) -> Comment:
    """Store a new comment and, when review is enabled, queue its spam check.

    The comment is committed before the review task starts, so the caller
    always gets a durable PENDING (or UNREAD) comment back immediately.
    """
    ref_id = require_object_id(draft.ref_id, "ref id")
    ref_type = require_ref_type(draft.ref_type)
    text = draft.text.strip()
    if not text:
        raise BadInput("Comment text must not be empty")
    if (await load_option(session, COMMENT_OPTIONS)).get("disableComment") is True:
        raise PermissionDenied("Comments are disabled")

    if claims is not None and isinstance(claims.subject, ResolvedSubject):
        attribution = await _attribute_signed_in(session, claims.subject.reader_id, draft)
    else:
        attribution = await _attribute_anonymous(
            session, draft, verifier=verifier, context=context
        )

    parent = await _load_parent(session, draft.parent_id, ref_id=ref_id, ref_type=ref_type)
    key = await compute_key(session, ref_id=ref_id, ref_type=ref_type, parent=parent)
    comments_index = await next_comment_index(session, ref_id=ref_id, ref_type=ref_type)
    review = await dispatcher.classifier.is_enabled(session)

    comment = Comment(
        ref_id=ref_id,
        ref_type=ref_type,
        reader_id=attribution.reader_id,
        author=attribution.author,
        mail=attribution.mail,
        text=text,
        state=int(CommentState.PENDING if review else CommentState.UNREAD),
        parent_id=parent.id if parent is not None else None,
        children=[],
        comments_index=comments_index,
        key=key,
        ip=context.ip,
        agent=context.agent,
        location=location_lookup.lookup(context.ip) if context.ip else None,
        url=_clean(draft.url),
        avatar=attribution.avatar,
        source=attribution.source,
    )
    session.add(comment)
    if parent is not None:
        attach_child(parent, comment.id)
    await session.commit()

    if review:
        dispatcher.classify_async(
            comment_id=comment.id,
            text=comment.text,
            author=comment.author,
            email=comment.mail,
        )
    logger.info(
        "Comment created",
        extra={"comment_id": comment.id, "ref_type": ref_type, "state": comment.state},
    )
    return comment


def _sort_key(comment: Comment) -> tuple[datetime, str]:
    created = comment.created_at
    # SQLite hands back naive values; fresh rows carry tzinfo.
    if created.tzinfo is not None:
        created = created.astimezone(timezone.utc).replace(tzinfo=None)
    return created, comment.id


def build_comment_tree(
    comments: Sequence[Comment],
    readers: dict[str, Reader],
) -> list[CommentNode]:
    """Arrange visible comments into reply trees, oldest first at every level.

    Replies whose parent is not visible are dropped with it.
    """
    nodes: dict[str, CommentNode] = {}
    for comment in sorted(comments, key=_sort_key):
        reader = readers.get(comment.reader_id) if comment.reader_id else None
        nodes[comment.id] = CommentNode(
            comment=comment,
            is_admin=bool(reader and reader.is_owner),
            avatar=comment.avatar or (reader.image if reader else None),
        )

    roots: list[CommentNode] = []
    for node in nodes.values():
        parent_id = node.comment.parent_id
        if parent_id is None:
            roots.append(node)
        elif parent_id in nodes:
            nodes[parent_id].children.append(node)
    return roots


async def list_comments(
    session: AsyncSession,
    *,
    ref_id: str,
    ref_type: str,
    viewer: Viewer,
) -> tuple[list[CommentNode], int]:
    ref_id = require_object_id(ref_id, "ref id")
    ref_type = require_ref_type(ref_type)
    result = await session.execute(
        select(Comment)
        .where(build_visibility_filter(ref_id=ref_id, ref_type=ref_type, viewer=viewer))
        .order_by(_asc(Comment.created_at), _asc(Comment.id))
    )
    comments = result.scalars().all()

    reader_ids = {comment.reader_id for comment in comments if comment.reader_id}
    readers: dict[str, Reader] = {}
    if reader_ids:
        reader_rows = await session.execute(
            select(Reader).where(
                cast(ColumnElement[bool], cast(Any, Reader.id).in_(sorted(reader_ids)))
            )
        )
        readers = {reader.id: reader for reader in reader_rows.scalars().all()}
    return build_comment_tree(comments, readers), len(comments)


async def _get_comment(session: AsyncSession, comment_id: str) -> Comment:
    comment = await session.get(Comment, require_object_id(comment_id, "comment id"))
    if comment is None:
        raise NotFound("Comment not found")
    return comment


def _ensure_can_edit(comment: Comment, claims: SessionClaims) -> None:
    if not isinstance(claims.subject, ResolvedSubject):
        raise PermissionDenied("Complete sign-in before editing comments")
    if claims.is_owner:
        return
    if comment.reader_id != claims.subject.reader_id:
        raise PermissionDenied("Only the author can change this comment")


async def update_comment_text(
    session: AsyncSession,
    comment_id: str,
    text: str,
    *,
    claims: SessionClaims,
) -> Comment:
    comment = await _get_comment(session, comment_id)
    _ensure_can_edit(comment, claims)
    stripped = text.strip()
    if not stripped:
        raise BadInput("Comment text must not be empty")
    comment.text = stripped
    await session.commit()
    return comment


async def delete_comment(session: AsyncSession, comment_id: str, *, claims: SessionClaims) -> None:
    """Delete a comment and detach it from its parent's children list.

    Sibling keys are not renumbered.
    """
    comment = await _get_comment(session, comment_id)
    _ensure_can_edit(comment, claims)
    if comment.parent_id is not None:
        parent = await session.get(Comment, comment.parent_id)
        if parent is not None:
            parent.children = [child for child in parent.children or [] if child != comment.id]
    await session.delete(comment)
    await session.commit()


async def set_whisper(session: AsyncSession, comment_id: str, hidden: bool) -> Comment:
    comment = await _get_comment(session, comment_id)
    comment.is_whispers = hidden
    await session.commit()
    return comment


async def set_pin(session: AsyncSession, comment_id: str, pinned: bool) -> Comment:
    comment = await _get_comment(session, comment_id)
    comment.pin = pinned
    await session.commit()
    return comment


__all__ = [
    "REF_TYPES",
    "CommentDraft",
    "CommentNode",
    "RequestContext",
    "build_comment_tree",
    "create_comment",
    "delete_comment",
    "list_comments",
    "require_object_id",
    "require_ref_type",
    "set_pin",
    "set_whisper",
    "update_comment_text",
    "viewer_from_claims",
]
