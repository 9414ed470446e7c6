"""Business logic services."""

from .cache import ContentCache, get_content_cache, set_content_cache
from .change_feed import (
    ChangeEvent,
    RedisStreamChangeFeed,
    get_change_feed,
    install_change_capture,
    set_change_feed,
)
from .coherency import CacheCoherencyPipeline, build_pipeline
from .rate_limiter import (
    RateLimitMiddleware,
    RateLimiter,
    get_rate_limiter,
    set_rate_limiter,
)
from .revalidation import RevalidationClient, get_revalidation_client, set_revalidation_client

__all__ = [
    "CacheCoherencyPipeline",
    "ChangeEvent",
    "ContentCache",
    "RateLimitMiddleware",
    "RateLimiter",
    "RedisStreamChangeFeed",
    "RevalidationClient",
    "build_pipeline",
    "get_change_feed",
    "get_content_cache",
    "get_rate_limiter",
    "get_revalidation_client",
    "install_change_capture",
    "set_change_feed",
    "set_content_cache",
    "set_rate_limiter",
    "set_revalidation_client",
]
