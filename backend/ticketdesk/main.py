from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from ticketdesk.api.routes.interaction_routes import router as interaction_router
from ticketdesk.container import container, mongo_manager, settings, storage
from ticketdesk.infrastructure.logging import get_logger, setup_logging

setup_logging(settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    try:
        await container.start()
    except Exception:
        logger.exception("startup_failed")
        raise
    logger.info("ticketdesk_started", app=settings.app_name)
    try:
        yield
    finally:
        await container.stop()
        logger.info("ticketdesk_stopped")


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.include_router(interaction_router)


@app.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "Bot is running!"


@app.get("/health")
def health() -> dict[str, object]:
    return {
        "status": "ok",
        "services": {
            "mongo": {"status": mongo_manager.status, "error": mongo_manager.error},
            "objectStorage": {"status": getattr(storage, "status", "unknown")},
        },
    }
