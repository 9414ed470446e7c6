"""In-process content cache with TTL expiry and LRU eviction."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from core import settings


@dataclass(frozen=True)
class PostKey:
    id: str

    def render(self) -> str:
        return f"post:{self.id}"


@dataclass(frozen=True)
class PostListKey:
    page: int
    size: int

    def render(self) -> str:
        return f"posts:page:{self.page}:size:{self.size}"


@dataclass(frozen=True)
class NoteKey:
    id: str

    def render(self) -> str:
        return f"note:{self.id}"


@dataclass(frozen=True)
class NoteListKey:
    page: int
    size: int

    def render(self) -> str:
        return f"notes:page:{self.page}:size:{self.size}"


@dataclass(frozen=True)
class PageKey:
    slug: str

    def render(self) -> str:
        return f"page:{self.slug}"


@dataclass(frozen=True)
class CategoriesKey:
    def render(self) -> str:
        return "categories"


CacheKey = PostKey | PostListKey | NoteKey | NoteListKey | PageKey | CategoriesKey


class ContentCache:
    """Bounded mapping of rendered keys to serialized payloads.

    Entries expire ``ttl_seconds`` after they were written and the least
    recently used entry is evicted once ``max_entries`` is exceeded. All
    operations hold one lock, so the cache is safe to share across threads
    and tasks.
    """

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max(max_entries, 1)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, bytes]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> bytes | None:
        rendered = key.render()
        with self._lock:
            entry = self._entries.get(rendered)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[rendered]
                return None
            self._entries.move_to_end(rendered)
            return value

    def set(self, key: CacheKey, value: bytes) -> None:
        rendered = key.render()
        with self._lock:
            self._entries[rendered] = (self._clock() + self.ttl_seconds, value)
            self._entries.move_to_end(rendered)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, key: CacheKey) -> bool:
        with self._lock:
            return self._entries.pop(key.render(), None) is not None

    def invalidate_prefix(self, name: str) -> int:
        """Drop every entry in the ``name`` namespace, e.g. all ``posts:*`` pages."""
        namespace = f"{name}:"
        with self._lock:
            doomed = [key for key in self._entries if key == name or key.startswith(namespace)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def entry_count(self) -> int:
        with self._lock:
            return len(self._entries)


_cached_cache: ContentCache | None = None


def get_content_cache() -> ContentCache:
    """Singleton accessor for the process-wide content cache."""
    global _cached_cache
    if _cached_cache is None:
        _cached_cache = ContentCache(settings.cache_max_entries, settings.cache_ttl_seconds)
    return _cached_cache


def set_content_cache(cache: ContentCache | None) -> None:
    """Override the cached instance (primarily for tests)."""
    global _cached_cache
    _cached_cache = cache


__all__ = [
    "CacheKey",
    "CategoriesKey",
    "ContentCache",
    "NoteKey",
    "NoteListKey",
    "PageKey",
    "PostKey",
    "PostListKey",
    "get_content_cache",
    "set_content_cache",
]
