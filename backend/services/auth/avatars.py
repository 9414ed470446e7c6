"""Avatar URL helpers."""

from __future__ import annotations

import hashlib

GRAVATAR_BASE_URL = "https://cravatar.cn/avatar"


def gravatar_url(email: str) -> str:
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return f"{GRAVATAR_BASE_URL}/{digest}"


__all__ = ["GRAVATAR_BASE_URL", "gravatar_url"]
