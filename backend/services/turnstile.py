"""Cloudflare Turnstile human-verification checks."""

from __future__ import annotations

import logging

import httpx

from core import UpstreamFailure, settings

from .http_client import build_http_client

logger = logging.getLogger(__name__)

SITEVERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
VERIFY_TIMEOUT_SECONDS = 10.0


class TurnstileVerifier:
    def __init__(self, secret: str) -> None:
        self.secret = secret.strip()

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    async def verify(self, token: str, remote_ip: str | None = None) -> bool:
        """Return True when the challenge token is accepted.

        Always True when no secret is configured.
        """
        if not self.enabled:
            return True

        body = {"secret": self.secret, "response": token}
        if remote_ip:
            body["remoteip"] = remote_ip
        async with build_http_client(VERIFY_TIMEOUT_SECONDS) as client:
            try:
                response = await client.post(SITEVERIFY_URL, json=body)
                result = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.error("Turnstile verification request failed", exc_info=exc)
                raise UpstreamFailure("Human verification service unavailable") from exc

        if result.get("success") is True:
            return True
        logger.warning(
            "Turnstile verification rejected",
            extra={"error_codes": result.get("error-codes") or []},
        )
        return False


_cached_verifier: TurnstileVerifier | None = None


def get_turnstile_verifier() -> TurnstileVerifier:
    global _cached_verifier
    if _cached_verifier is None:
        _cached_verifier = TurnstileVerifier(settings.turnstile_secret)
    return _cached_verifier


def set_turnstile_verifier(verifier: TurnstileVerifier | None) -> None:
    """Override the cached verifier (primarily for tests)."""
    global _cached_verifier
    _cached_verifier = verifier


__all__ = [
    "SITEVERIFY_URL",
    "TurnstileVerifier",
    "get_turnstile_verifier",
    "set_turnstile_verifier",
]
