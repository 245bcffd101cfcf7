"""
Celery application configuration for background tasks.
"""
from celery import Celery
from celery.schedules import crontab

from hamro_task.core.config import settings

# Create Celery instance
celery_app = Celery(
    "hamro-task",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "hamro_task.tasks.reminders",
        "hamro_task.tasks.subscriptions",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.dashboard_timezone,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    result_expires=3600,  # 1 hour
    beat_schedule={
        "send-due-date-reminders": {
            "task": "hamro_task.tasks.reminders.send_due_date_reminders",
            "schedule": crontab(hour=8, minute=0),  # Daily, dashboard timezone
        },
        "push-pending-notifications": {
            "task": "hamro_task.tasks.reminders.push_pending_notifications",
            "schedule": 300.0,  # Every 5 minutes
        },
        "expire-subscriptions": {
            "task": "hamro_task.tasks.subscriptions.expire_subscriptions",
            "schedule": 3600.0,  # Hourly
        },
    },
)

celery_app.conf.task_routes = {
    "hamro_task.tasks.reminders.*": {"queue": "notifications"},
    "hamro_task.tasks.subscriptions.*": {"queue": "billing"},
}
