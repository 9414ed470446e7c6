"""Content change feed: capture on commit, publish to Redis streams, watch."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Any, Protocol

from redis.asyncio import Redis
from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlmodel import SQLModel

from core import settings
from models import Category, Note, Page, Post

logger = logging.getLogger(__name__)

WATCHED_OPERATIONS = frozenset({"insert", "update", "replace", "delete"})
CONTENT_COLLECTIONS = ("posts", "notes", "pages", "categories")
STREAM_PREFIX = "changes"
_PENDING_KEY = "pending_content_changes"

_CONTENT_MODELS: dict[type[SQLModel], str] = {
    Post: "posts",
    Note: "notes",
    Page: "pages",
    Category: "categories",
}


@dataclass(frozen=True)
class ChangeEvent:
    operation: str
    collection: str
    document_key: dict[str, Any]
    full_document: dict[str, Any] | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)

    @classmethod
    def from_json(cls, raw: str | bytes) -> ChangeEvent:
        data = json.loads(raw)
        return cls(
            operation=str(data["operation"]),
            collection=str(data["collection"]),
            document_key=dict(data.get("document_key") or {}),
            full_document=data.get("full_document"),
        )


class ChangeFeed(Protocol):
    async def publish(self, change: ChangeEvent) -> None: ...

    def watch(
        self,
        *,
        operations: Iterable[str],
        collections: Iterable[str],
    ) -> AsyncIterator[ChangeEvent]: ...


class SupportsStreams(Protocol):
    async def xadd(self, name: Any, fields: Any, *args: Any, **kwargs: Any) -> Any: ...

    async def xread(self, streams: Any, *args: Any, **kwargs: Any) -> Any: ...


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


def _stream_batches(response: Any) -> list[tuple[Any, Any]]:
    if isinstance(response, dict):
        # RESP3 maps each stream to a one-element list holding its entries.
        return [(stream, value[0] if value else []) for stream, value in response.items()]
    return list(response or [])


class RedisStreamChangeFeed:
    """One Redis stream per collection, named ``changes:<collection>``.

    Read positions survive across ``watch`` calls so a reconnect resumes
    after the last delivered entry.
    """

    def __init__(
        self,
        redis_client: SupportsStreams,
        *,
        maxlen: int = 10_000,
        block_ms: int = 5_000,
    ) -> None:
        self.redis = redis_client
        self.maxlen = maxlen
        self.block_ms = block_ms
        self._positions: dict[str, str] = {}

    @staticmethod
    def stream_name(collection: str) -> str:
        return f"{STREAM_PREFIX}:{collection}"

    async def publish(self, change: ChangeEvent) -> None:
        await self.redis.xadd(
            self.stream_name(change.collection),
            {"event": change.to_json()},
            maxlen=self.maxlen,
            approximate=True,
        )

    async def watch(
        self,
        *,
        operations: Iterable[str],
        collections: Iterable[str],
    ) -> AsyncIterator[ChangeEvent]:
        wanted_operations = frozenset(operations)
        streams: dict[str, str] = {}
        for collection in collections:
            name = self.stream_name(collection)
            streams[name] = self._positions.get(name, "$")

        while True:
            response = await self.redis.xread(streams, block=self.block_ms)
            for stream, entries in _stream_batches(response):
                stream_name = _text(stream)
                for entry_id, fields in entries:
                    streams[stream_name] = self._positions[stream_name] = _text(entry_id)
                    raw = fields.get(b"event", fields.get("event"))
                    if raw is None:
                        continue
                    try:
                        change = ChangeEvent.from_json(raw)
                    except (ValueError, KeyError, TypeError):
                        logger.warning(
                            "Skipping malformed change entry",
                            extra={"stream": stream_name, "entry_id": _text(entry_id)},
                        )
                        continue
                    if change.operation in wanted_operations:
                        yield change


@lru_cache
def get_stream_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=False)


_cached_feed: ChangeFeed | None = None


def get_change_feed() -> ChangeFeed | None:
    """Process-wide feed, or None when change capture is disabled."""
    global _cached_feed
    if not settings.change_feed_enabled:
        return None
    if _cached_feed is None:
        _cached_feed = RedisStreamChangeFeed(
            get_stream_redis_client(),
            maxlen=settings.change_feed_stream_maxlen,
            block_ms=settings.change_feed_block_ms,
        )
    return _cached_feed


def set_change_feed(feed: ChangeFeed | None) -> None:
    """Override the cached feed (primarily for tests)."""
    global _cached_feed
    _cached_feed = feed


def _snapshot(instance: SQLModel) -> dict[str, Any]:
    return instance.model_dump(mode="json")


def _changes_from_flush(session: Session) -> list[ChangeEvent]:
    changes: list[ChangeEvent] = []
    for operation, instances in (
        ("insert", session.new),
        ("update", session.dirty),
        ("delete", session.deleted),
    ):
        for instance in instances:
            collection = _CONTENT_MODELS.get(type(instance))
            if collection is None:
                continue
            if operation == "update" and not session.is_modified(instance):
                continue
            changes.append(
                ChangeEvent(
                    operation=operation,
                    collection=collection,
                    document_key={"id": getattr(instance, "id")},
                    full_document=None if operation == "delete" else _snapshot(instance),
                )
            )
    return changes


def _record_flush(session: Session, flush_context: Any) -> None:
    changes = _changes_from_flush(session)
    if changes:
        session.info.setdefault(_PENDING_KEY, []).extend(changes)


def _discard_pending(session: Session, *args: Any) -> None:
    session.info.pop(_PENDING_KEY, None)


_publish_tasks: set[asyncio.Task[None]] = set()


async def _publish_all(feed: ChangeFeed, changes: list[ChangeEvent]) -> None:
    for change in changes:
        try:
            await feed.publish(change)
        except Exception:
            logger.exception(
                "Failed to publish content change",
                extra={"collection": change.collection, "operation": change.operation},
            )


def _publish_committed(session: Session) -> None:
    changes: list[ChangeEvent] = session.info.pop(_PENDING_KEY, [])
    if not changes:
        return
    feed = get_change_feed()
    if feed is None:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running loop; dropping %d content changes", len(changes))
        return
    task = loop.create_task(_publish_all(feed, changes))
    _publish_tasks.add(task)
    task.add_done_callback(_publish_tasks.discard)


async def wait_for_publishes() -> None:
    """Wait until every change captured so far has been handed to the feed."""
    while _publish_tasks:
        await asyncio.gather(*list(_publish_tasks), return_exceptions=True)


_installed = False


def install_change_capture() -> None:
    """Attach the flush and commit hooks to every ORM session. Idempotent."""
    global _installed
    if _installed:
        return
    event.listen(Session, "after_flush", _record_flush)
    event.listen(Session, "after_commit", _publish_committed)
    event.listen(Session, "after_rollback", _discard_pending)
    _installed = True


__all__ = [
    "CONTENT_COLLECTIONS",
    "WATCHED_OPERATIONS",
    "ChangeEvent",
    "ChangeFeed",
    "RedisStreamChangeFeed",
    "get_change_feed",
    "install_change_capture",
    "set_change_feed",
    "wait_for_publishes",
]
