"""Keeps the local cache and the rendering tier in step with content changes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from core import settings

from .cache import CategoriesKey, ContentCache, NoteKey, PageKey, PostKey, get_content_cache
from .change_feed import (
    CONTENT_COLLECTIONS,
    WATCHED_OPERATIONS,
    ChangeEvent,
    ChangeFeed,
    get_change_feed,
)
from .revalidation import RevalidationClient, get_revalidation_client

logger = logging.getLogger(__name__)

# Only these can move pagination boundaries or totals.
COUNT_CHANGING_OPERATIONS = frozenset({"insert", "delete"})


def _field(document: dict[str, Any] | None, name: str) -> Any:
    if not document:
        return None
    return document.get(name)


class CacheCoherencyPipeline:
    """Consumes the change feed forever, reconnecting after a fixed delay.

    Each event drops the matching local cache entries and sends signed
    revalidation calls for the affected tags. A failing handler or
    revalidation call never stops the loop.
    """

    def __init__(
        self,
        feed_factory: Callable[[], ChangeFeed],
        cache: ContentCache,
        revalidation: RevalidationClient,
        *,
        reconnect_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.feed_factory = feed_factory
        self.cache = cache
        self.revalidation = revalidation
        self.reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._handlers: dict[str, Callable[[ChangeEvent], Awaitable[None]]] = {
            "posts": self._on_post_change,
            "notes": self._on_note_change,
            "pages": self._on_page_change,
            "categories": self._on_category_change,
        }

    async def run_forever(self) -> None:
        while True:
            await self.stream_once()
            await self._sleep(self.reconnect_delay)

    async def stream_once(self) -> None:
        """One connect-and-stream cycle; returns when the feed ends or fails."""
        try:
            feed = self.feed_factory()
            logger.info("Change feed connected", extra={"collections": list(CONTENT_COLLECTIONS)})
            async for change in feed.watch(
                operations=WATCHED_OPERATIONS, collections=CONTENT_COLLECTIONS
            ):
                await self.handle_event(change)
            logger.warning("Change feed closed; reconnecting")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Change feed failed; reconnecting",
                extra={"delay_seconds": self.reconnect_delay},
            )

    async def handle_event(self, change: ChangeEvent) -> None:
        handler = self._handlers.get(change.collection)
        if handler is None:
            logger.debug("Ignoring change", extra={"collection": change.collection})
            return
        logger.info(
            "Content changed",
            extra={"collection": change.collection, "operation": change.operation},
        )
        try:
            await handler(change)
        except Exception:
            logger.exception(
                "Change handler failed",
                extra={"collection": change.collection, "operation": change.operation},
            )

    async def _revalidate(self, *tags: str) -> list[str]:
        done = []
        for tag in tags:
            if await self.revalidation.notify_tag(tag):
                done.append(tag)
        return done

    async def _on_post_change(self, change: ChangeEvent) -> None:
        post_id = _field(change.document_key, "id")
        slug = _field(change.full_document, "slug")
        tags: list[str] = []
        if post_id is not None:
            self.cache.invalidate(PostKey(str(post_id)))
            tags.append(f"post-{post_id}")
        if slug:
            tags.append(f"post-slug-{slug}")
        if change.operation in COUNT_CHANGING_OPERATIONS:
            tags.extend(("posts", "home"))
            self.cache.invalidate_prefix("posts")
        revalidated = await self._revalidate(*tags)
        logger.info("Post caches refreshed", extra={"post_id": post_id, "tags": revalidated})

    async def _on_note_change(self, change: ChangeEvent) -> None:
        note_id = _field(change.document_key, "id")
        nid = _field(change.full_document, "nid")
        tags: list[str] = []
        if note_id is not None:
            self.cache.invalidate(NoteKey(str(note_id)))
            tags.append(f"note-{note_id}")
        if nid is not None:
            tags.append(f"note-nid-{nid}")
        if change.operation in COUNT_CHANGING_OPERATIONS:
            tags.extend(("notes", "home"))
            self.cache.invalidate_prefix("notes")
        revalidated = await self._revalidate(*tags)
        logger.info("Note caches refreshed", extra={"note_id": note_id, "tags": revalidated})

    async def _on_page_change(self, change: ChangeEvent) -> None:
        slug = _field(change.full_document, "slug")
        if not slug:
            return
        self.cache.invalidate(PageKey(str(slug)))
        await self._revalidate(f"page-{slug}")

    async def _on_category_change(self, change: ChangeEvent) -> None:
        self.cache.invalidate(CategoriesKey())
        # Post listings embed category names.
        self.cache.invalidate_prefix("posts")
        await self._revalidate("categories")


def _require_feed() -> ChangeFeed:
    feed = get_change_feed()
    if feed is None:
        raise RuntimeError("Change feed is disabled")
    return feed


def build_pipeline() -> CacheCoherencyPipeline:
    return CacheCoherencyPipeline(
        _require_feed,
        get_content_cache(),
        get_revalidation_client(),
        reconnect_delay=settings.change_feed_reconnect_seconds,
    )


__all__ = ["COUNT_CHANGING_OPERATIONS", "CacheCoherencyPipeline", "build_pipeline"]
