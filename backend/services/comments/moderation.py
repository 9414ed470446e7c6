"""Background spam review of pending comments."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, cast

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

from db.session import AsyncSessionMaker
from models import Comment, CommentState

from .spam import SpamClassifier

logger = logging.getLogger(__name__)


class ModerationDispatcher:
    """Launches one fire-and-forget review task per pending comment.

    No concurrency cap is applied; a burst of comments starts a burst of
    classifier calls.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        classifier: SpamClassifier | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.classifier = classifier or SpamClassifier()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def classify_async(
        self,
        *,
        comment_id: str,
        text: str,
        author: str,
        email: str,
    ) -> asyncio.Task[None]:
        task = asyncio.create_task(
            self._review(comment_id=comment_id, text=text, author=author, email=email),
            name=f"spam-review:{comment_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every review started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _review(self, *, comment_id: str, text: str, author: str, email: str) -> None:
        try:
            async with self.session_factory() as session:
                verdict = await self.classifier.check(
                    session, text=text, author=author, email=email
                )
        except Exception:
            logger.exception("Spam review failed", extra={"comment_id": comment_id})
            await self._set_state(comment_id, CommentState.UNREAD)
            return

        new_state = CommentState.SPAM if verdict.is_spam else CommentState.UNREAD
        if not await self._set_state(comment_id, new_state):
            return

        if verdict.is_spam:
            logger.warning(
                "Comment flagged as spam",
                extra={
                    "comment_id": comment_id,
                    "confidence": verdict.confidence,
                    "reason": verdict.reason,
                },
            )
        else:
            logger.info("Comment passed spam review", extra={"comment_id": comment_id})

    async def _set_state(self, comment_id: str, state: CommentState) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(Comment)
                    .where(cast(ColumnElement[bool], cast(Any, Comment.id) == comment_id))
                    .values(state=int(state))
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to store review outcome",
                extra={"comment_id": comment_id, "state": int(state)},
            )
            return False
        return True


_cached_dispatcher: ModerationDispatcher | None = None


def get_moderation_dispatcher() -> ModerationDispatcher:
    """Singleton accessor for the shared moderation dispatcher."""
    global _cached_dispatcher
    if _cached_dispatcher is None:
        _cached_dispatcher = ModerationDispatcher(AsyncSessionMaker)
    return _cached_dispatcher


def set_moderation_dispatcher(dispatcher: ModerationDispatcher | None) -> None:
    """Override the cached dispatcher (primarily for tests)."""
    global _cached_dispatcher
    _cached_dispatcher = dispatcher


__all__ = [
    "ModerationDispatcher",
    "get_moderation_dispatcher",
    "set_moderation_dispatcher",
]
