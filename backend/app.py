"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.v1 import api_router
from core import settings, setup_logging
from services import RateLimitMiddleware, get_rate_limiter
from services.change_feed import install_change_capture
from services.coherency import build_pipeline
from services.comments import get_moderation_dispatcher

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    pipeline_task: asyncio.Task | None = None
    if settings.change_feed_enabled:
        pipeline_task = asyncio.create_task(
            build_pipeline().run_forever(), name="cache-coherency-pipeline"
        )
        logger.info("Cache coherency pipeline started")
    try:
        yield
    finally:
        if pipeline_task is not None:
            pipeline_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pipeline_task
            logger.info("Cache coherency pipeline stopped")
        await get_moderation_dispatcher().drain()


def create_app() -> FastAPI:
    setup_logging()
    install_change_capture()

    app = FastAPI(title="Inkwell API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        limiter_factory=get_rate_limiter,
        exempt_paths={HEALTH_PATH},
    )
    app.include_router(api_router)

    @app.get(HEALTH_PATH, tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
