"""FastAPI app exposing health and metrics for the booking bot."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from klarity.api.health import router as health_router
from klarity.api.metrics import router as metrics_router
from klarity.config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("[api] serving /health and /metrics")
    yield
    from klarity.database import engine

    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title="Kambo Klarity", version="0.1.0", debug=settings.app_debug, lifespan=lifespan)
    for router in (health_router, metrics_router):
        app.include_router(router)
    return app


app = create_app()
