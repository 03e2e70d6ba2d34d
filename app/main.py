from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.sensory_service import SensoryMapService, build_default_service
from settings import get_settings

logger = logging.getLogger(__name__)


async def sweep_periodically(service: SensoryMapService, interval: float) -> None:
    """Expire decayed reports every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            service.sweep_expired()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Periodic sweep failed", extra={"reason": str(exc)})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    service = build_default_service()
    sweeper = asyncio.create_task(
        sweep_periodically(service, get_settings().sweep_interval_seconds)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        build_default_service.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensmap Routing Engine",
        description="Crowd-sourced sensory reports and comfort-aware walking routes.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()
