"""
Due-date reminders and push delivery.
"""
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.celery_app import celery_app
from hamro_task.core.config import settings
from hamro_task.core.logger import get_logger
from hamro_task.core.models import utcnow
from hamro_task.integrations.functions import FunctionsClient
from hamro_task.modules.notifications.links import notification_url
from hamro_task.modules.notifications.models import EntityType, Notification, NotificationType
from hamro_task.modules.notifications.preferences import PreferencesService, is_quiet_time
from hamro_task.modules.notifications.push import PushSubscriptionService
from hamro_task.modules.notifications.service import NotificationService
from hamro_task.modules.projects.models import Project, Task, TaskStatus

from . import run_job

logger = get_logger(__name__)

PUSH_BATCH_SIZE = 100
REMINDER_DEDUPE_WINDOW = timedelta(hours=23)


def local_today() -> date:
    return datetime.now(ZoneInfo(settings.dashboard_timezone)).date()


async def create_due_date_reminders(db: AsyncSession, today: Optional[date] = None) -> int:
    """
    Remind assignees of open tasks due tomorrow.

    A task already reminded within the last day is skipped, so the job may
    run more than once a day. Users who turned reminders off get nothing.

    Returns:
        Number of reminders created
    """
    today = today or local_today()
    tomorrow = today + timedelta(days=1)
    result = await db.execute(
        select(Task, Project)
        .join(Project, Project.id == Task.project_id)
        .where(
            Task.due_date == tomorrow,
            Task.assigned_to.is_not(None),
            Task.completed_at.is_(None),
            Task.status != TaskStatus.DONE.value,
            Project.is_archived.is_(False),
        )
    )
    rows = result.all()

    notifications = NotificationService(db)
    created = 0
    for task, project in rows:
        recent = await db.scalar(
            select(Notification.id).where(
                Notification.user_id == task.assigned_to,
                Notification.entity_id == task.id,
                Notification.type == NotificationType.DUE_DATE_REMINDER.value,
                Notification.created_at >= utcnow() - REMINDER_DEDUPE_WINDOW,
            )
        )
        if recent is not None:
            continue
        notification = await notifications.notify(
            workspace_id=project.workspace_id,
            user_id=task.assigned_to,
            notification_type=NotificationType.DUE_DATE_REMINDER,
            title=f"{task.title} is due tomorrow",
            body=project.name,
            entity_type=EntityType.TASK,
            entity_id=task.id,
            metadata={"project_id": str(project.id), "due_date": tomorrow.isoformat()},
        )
        if notification is not None:
            created += 1

    logger.info("Due date reminders created", count=created, due_date=tomorrow.isoformat())
    return created


async def deliver_pending_pushes(
    db: AsyncSession,
    functions: FunctionsClient,
    now: Optional[datetime] = None,
    limit: int = PUSH_BATCH_SIZE,
) -> int:
    """
    Send push messages for notifications not pushed yet.

    Notifications of users without push (disabled, or no active device) are
    marked pushed without sending. Those inside the user's quiet hours wait
    for a later run, as do failed sends.

    Returns:
        Number of push messages sent
    """
    now = now or utcnow()
    result = await db.execute(
        select(Notification)
        .where(Notification.pushed.is_(False))
        .order_by(Notification.created_at)
        .limit(limit)
    )
    pending = list(result.scalars().all())

    preferences = PreferencesService(db)
    devices = PushSubscriptionService(db)
    sent = 0
    for notification in pending:
        prefs = await preferences.get(notification.user_id, notification.workspace_id)
        if prefs is None or not prefs.push_enabled or not await devices.list_active(notification.user_id):
            notification.pushed = True
            continue
        if is_quiet_time(prefs, now):
            continue

        outcome = await functions.send_push_notification(
            notification.user_id,
            notification.id,
            notification.title,
            notification.body,
            notification_url(notification),
            tag=notification.type,
        )
        if outcome.success:
            notification.pushed = True
            sent += 1

    await db.commit()
    logger.info("Push delivery finished", pending=len(pending), sent=sent)
    return sent


@celery_app.task(bind=True)
def send_due_date_reminders(self):
    """Daily reminder for tasks due tomorrow."""
    return run_job("send_due_date_reminders", create_due_date_reminders)


@celery_app.task(bind=True)
def push_pending_notifications(self):
    """Deliver queued notifications to devices."""
    return run_job("push_pending_notifications", deliver_pending_pushes, FunctionsClient())
