"""Signed cache-revalidation calls to the rendering tier."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from collections.abc import Callable
from typing import Literal

import httpx

from core import settings

from .http_client import build_http_client

logger = logging.getLogger(__name__)

REVALIDATE_PATH = "/api/revalidate"
SIGNATURE_TOLERANCE_SECONDS = 300

TargetKind = Literal["tag", "path"]


class RevalidationClient:
    """Posts ``{tag|path, timestamp, signature}`` to the revalidation receiver.

    The signature is hex HMAC-SHA256 keyed with the shared secret over
    ``secret + timestamp + salt + target``. Failures are logged and reported
    as False, never raised.
    """

    def __init__(
        self,
        base_url: str,
        secret: str,
        salt: str,
        *,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.salt = salt
        self.timeout = timeout
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.secret)

    def sign(self, target: str, timestamp: int) -> str:
        message = f"{self.secret}{timestamp}{self.salt}{target}"
        return hmac.new(
            self.secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def verify(self, target: str, timestamp: int, signature: str) -> bool:
        """Receiver-side check: signature matches and timestamp is within tolerance."""
        if abs(int(self._clock()) - timestamp) > SIGNATURE_TOLERANCE_SECONDS:
            return False
        return hmac.compare_digest(self.sign(target, timestamp), signature)

    async def notify_tag(self, tag: str) -> bool:
        return await self._send("tag", tag)

    async def notify_path(self, path: str) -> bool:
        return await self._send("path", path)

    async def notify(self, tag_or_path: str) -> bool:
        """Revalidate a path when the value starts with ``/``, otherwise a tag."""
        if tag_or_path.startswith("/"):
            return await self.notify_path(tag_or_path)
        return await self.notify_tag(tag_or_path)

    async def _send(self, kind: TargetKind, target: str) -> bool:
        if not self.enabled:
            logger.debug("Revalidation not configured", extra={kind: target})
            return False

        timestamp = int(self._clock())
        body = {kind: target, "timestamp": timestamp, "signature": self.sign(target, timestamp)}
        try:
            async with build_http_client(self.timeout) as client:
                response = await client.post(f"{self.base_url}{REVALIDATE_PATH}", json=body)
        except httpx.HTTPError as exc:
            logger.error("Revalidation request failed", extra={kind: target}, exc_info=exc)
            return False

        if response.is_success:
            logger.info("Revalidated", extra={kind: target})
            return True
        logger.error(
            "Revalidation rejected",
            extra={kind: target, "status_code": response.status_code, "body": response.text[:500]},
        )
        return False


_cached_client: RevalidationClient | None = None


def get_revalidation_client() -> RevalidationClient:
    global _cached_client
    if _cached_client is None:
        _cached_client = RevalidationClient(
            settings.revalidation_url,
            settings.revalidation_secret,
            settings.revalidation_salt,
            timeout=settings.revalidation_timeout_seconds,
        )
    return _cached_client


def set_revalidation_client(client: RevalidationClient | None) -> None:
    """Override the cached client (primarily for tests)."""
    global _cached_client
    _cached_client = client


__all__ = [
    "REVALIDATE_PATH",
    "SIGNATURE_TOLERANCE_SECONDS",
    "RevalidationClient",
    "get_revalidation_client",
    "set_revalidation_client",
]
