"""Root logger configuration."""

from __future__ import annotations

import logging

from .config import settings

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _resolve_level(value: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> None:
    """Configure the root logger once. Safe to call repeatedly."""
    root = logging.getLogger()
    level = _resolve_level(settings.log_level)
    if root.handlers:
        # uvicorn and pytest install their own handlers
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    root.setLevel(level)
    root.addHandler(handler)
