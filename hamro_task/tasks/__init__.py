"""
Background jobs run by Celery beat.

Each job is an ``async`` function taking its collaborators as arguments; the
Celery task around it only opens a database session and runs it to
completion.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable

from hamro_task.core.config import settings
from hamro_task.core.database import DatabaseManager
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import record_celery_task
from hamro_task.core.realtime import RedisChangeRelay, change_feed

logger = get_logger(__name__)


def run_job(name: str, job: Callable[..., Awaitable[Any]], *args: Any) -> Any:
    """
    Run ``job(session, *args)`` on a fresh event loop.

    Each run gets its own engine and Redis relay so no connection outlives
    the loop it was opened on. Change events the job publishes reach the API
    processes through the relay.
    """

    async def _run() -> Any:
        manager = DatabaseManager()
        relay = RedisChangeRelay(change_feed) if settings.change_feed_relay_enabled else None
        if relay is not None:
            await relay.start(listen=False)
        try:
            async with manager.session_factory() as session:
                return await job(session, *args)
        finally:
            if relay is not None:
                await relay.stop()
            await manager.close()

    started = time.perf_counter()
    try:
        result = asyncio.run(_run())
    except Exception as e:
        record_celery_task(name, time.perf_counter() - started, success=False)
        logger.error("Background job failed", job=name, error=str(e))
        raise
    record_celery_task(name, time.perf_counter() - started)
    logger.info("Background job finished", job=name, result=result)
    return result
