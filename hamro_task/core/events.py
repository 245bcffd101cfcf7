"""
Application startup and shutdown event handlers.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from hamro_task.core.config import settings
from hamro_task.core.database import close_db
from hamro_task.core.logger import configure_logging, get_logger
from hamro_task.core.realtime import RedisChangeRelay, change_feed

logger = get_logger("events")


def _redact(url: str) -> str:
    return url.split("@")[-1] if "@" in url else "***"


async def startup_tasks() -> None:
    """Tasks to run on application startup."""
    configure_logging()
    logger.info(
        "Application started successfully",
        environment=settings.environment,
        debug=settings.debug,
        database_url=_redact(settings.database_url),
        redis_url=_redact(settings.redis_url),
        dashboard_timezone=settings.dashboard_timezone,
    )


async def start_change_relay() -> Optional[RedisChangeRelay]:
    """Join the cross-process change feed; None when the relay is disabled."""
    if not settings.change_feed_relay_enabled:
        return None
    relay = RedisChangeRelay(change_feed)
    await relay.start()
    return relay


async def shutdown_tasks() -> None:
    """Tasks to run on application shutdown."""
    logger.info("Starting application shutdown tasks")

    # Ends every open websocket stream
    change_feed.close()

    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error("Shutdown task failed", error=str(e), exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.
    Handles startup and shutdown events.
    """
    await startup_tasks()
    relay = await start_change_relay()
    try:
        yield
    finally:
        if relay is not None:
            await relay.stop()
        await shutdown_tasks()
