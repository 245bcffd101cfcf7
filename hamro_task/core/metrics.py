"""
Prometheus metrics for monitoring.
"""
import time

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

# Request metrics
request_count = Counter(
    'hamro_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

request_duration = Histogram(
    'hamro_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

active_requests = Gauge(
    'hamro_http_requests_active',
    'Number of active HTTP requests'
)

# Dashboard
dashboard_builds = Counter(
    'hamro_dashboard_builds_total',
    'Dashboard aggregation runs',
    ['status']
)

dashboard_build_duration = Histogram(
    'hamro_dashboard_build_duration_seconds',
    'Time spent fetching and aggregating a dashboard'
)

# Chat
chat_messages_sent = Counter(
    'hamro_chat_messages_total',
    'Chat messages persisted',
    ['kind']
)

realtime_subscribers = Gauge(
    'hamro_realtime_subscribers',
    'Open change feed subscriptions'
)

# Serverless functions
function_invocations = Counter(
    'hamro_function_invocations_total',
    'Serverless function invocations',
    ['function', 'status']
)

# Notifications
notifications_created = Counter(
    'hamro_notifications_created_total',
    'Notifications written',
    ['type']
)

# Celery
celery_task_count = Counter(
    'hamro_celery_tasks_total',
    'Total Celery tasks',
    ['task_name', 'status']
)

celery_task_duration = Histogram(
    'hamro_celery_task_duration_seconds',
    'Celery task duration in seconds',
    ['task_name']
)

# Storage
storage_uploads = Counter(
    'hamro_storage_uploads_total',
    'Uploads to object storage',
    ['bucket', 'status']
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        active_requests.inc()
        start_time = time.time()
        endpoint = self._get_endpoint_name(request)
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            request_count.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            request_duration.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.time() - start_time)
            active_requests.dec()

    def _get_endpoint_name(self, request: Request) -> str:
        """Normalized endpoint name, with ids replaced by a placeholder."""
        path = request.url.path
        if not path.startswith("/api/v1/"):
            return path

        normalized_parts = []
        for i, part in enumerate(path.split("/")):
            if i >= 4 and part and not part.replace("-", "").isalpha():
                normalized_parts.append("{id}")
            else:
                normalized_parts.append(part)
        return "/".join(normalized_parts)


def record_dashboard_build(duration: float, success: bool = True) -> None:
    status = "success" if success else "error"
    dashboard_builds.labels(status=status).inc()
    dashboard_build_duration.observe(duration)


def record_chat_message(kind: str) -> None:
    chat_messages_sent.labels(kind=kind).inc()


def record_function_invocation(function: str, success: bool) -> None:
    status = "success" if success else "error"
    function_invocations.labels(function=function, status=status).inc()


def record_notification(notification_type: str) -> None:
    notifications_created.labels(type=notification_type).inc()


def record_celery_task(task_name: str, duration: float, success: bool = True) -> None:
    status = "success" if success else "error"
    celery_task_count.labels(task_name=task_name, status=status).inc()
    celery_task_duration.labels(task_name=task_name).observe(duration)


def record_storage_upload(bucket: str, success: bool = True) -> None:
    status = "success" if success else "error"
    storage_uploads.labels(bucket=bucket, status=status).inc()


def update_realtime_subscribers(count: int) -> None:
    realtime_subscribers.set(count)


def get_metrics() -> bytes:
    """Get Prometheus metrics in text format."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
