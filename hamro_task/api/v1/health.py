"""
Health check and metrics endpoints.
"""
from datetime import datetime, timezone
from typing import Any, Dict

import redis.asyncio as redis
from fastapi import APIRouter, HTTPException, Response, status

from hamro_task.core.config import settings
from hamro_task.core.database import db_manager
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import get_metrics, get_metrics_content_type, update_realtime_subscribers
from hamro_task.core.realtime import change_feed

logger = get_logger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_redis() -> Dict[str, str]:
    try:
        client = redis.from_url(settings.redis_url)
        try:
            await client.ping()
        finally:
            await client.aclose()
    except Exception as e:
        logger.warning("Redis health check failed", error=str(e))
        return {"status": "unhealthy", "message": f"Redis connection failed: {e}"}
    return {"status": "healthy", "message": "Redis connection successful"}


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": settings.app_version,
    }


@router.get("/health/detailed")
async def detailed_health_check() -> Dict[str, Any]:
    """Health of the database and the celery broker."""
    checks = {
        "database": (
            {"status": "healthy", "message": "Database connection successful"}
            if await db_manager.health_check()
            else {"status": "unhealthy", "message": "Database connection failed"}
        ),
        "redis": await check_redis(),
    }
    body = {
        "status": "healthy",
        "timestamp": _now(),
        "version": settings.app_version,
        "realtime_subscribers": change_feed.subscriber_count,
        "checks": checks,
    }
    if any(check["status"] != "healthy" for check in checks.values()):
        body["status"] = "unhealthy"
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=body)
    return body


@router.get("/health/live")
async def liveness_check():
    """Liveness check for Kubernetes."""
    return {"status": "alive", "timestamp": _now()}


@router.get("/metrics")
async def get_prometheus_metrics():
    """Prometheus metrics endpoint."""
    update_realtime_subscribers(change_feed.subscriber_count)
    return Response(content=get_metrics(), media_type=get_metrics_content_type())
