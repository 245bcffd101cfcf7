"""
Notification preferences.

One row per (user, workspace), created with defaults on first read.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.logger import get_logger
from hamro_task.core.models import enum_value, utcnow

from .models import NotificationPreferences, NotificationType
from .schemas import PreferencesUpdate

logger = get_logger(__name__)

# Preference toggle consulted for each notification type
TYPE_TOGGLES = {
    NotificationType.TASK_ASSIGNED.value: "task_assigned",
    NotificationType.TASK_STATUS_CHANGED.value: "task_status_changed",
    NotificationType.TASK_COMPLETED.value: "task_completed",
    NotificationType.COMMENT_ADDED.value: "comment_added",
    NotificationType.COMMENT_REPLY.value: "comment_reply",
    NotificationType.PROJECT_UPDATED.value: "project_updates",
    NotificationType.MEMBER_JOINED.value: "member_updates",
    NotificationType.MEMBER_REMOVED.value: "member_updates",
    NotificationType.CHAT_MENTION.value: "chat_mentions",
    NotificationType.DUE_DATE_REMINDER.value: "due_date_reminders",
}


def allows(preferences: Optional[NotificationPreferences], notification_type) -> bool:
    """Whether the user wants notifications of this type; no row means yes."""
    if preferences is None:
        return True
    toggle = TYPE_TOGGLES.get(enum_value(notification_type))
    return toggle is None or bool(getattr(preferences, toggle))


def is_quiet_time(preferences: Optional[NotificationPreferences], now: Optional[datetime] = None) -> bool:
    """
    True when ``now`` falls inside the user's quiet hours, in their timezone.

    Windows may wrap midnight (22 to 7). Equal start and end means no window.
    """
    if preferences is None or not preferences.quiet_hours_enabled:
        return False
    start, end = preferences.quiet_hours_start, preferences.quiet_hours_end
    if start == end:
        return False
    hour = (now or utcnow()).astimezone(ZoneInfo(preferences.timezone)).hour
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


class PreferencesService:
    """Service class for notification preferences."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: UUID, workspace_id: UUID) -> Optional[NotificationPreferences]:
        result = await self.db.execute(
            select(NotificationPreferences).where(
                NotificationPreferences.user_id == user_id,
                NotificationPreferences.workspace_id == workspace_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: UUID, workspace_id: UUID) -> NotificationPreferences:
        """
        Preferences for a user in a workspace, created with defaults if missing.

        A concurrent creation is tolerated by re-reading the winner's row.
        """
        preferences = await self.get(user_id, workspace_id)
        if preferences is not None:
            return preferences

        preferences = NotificationPreferences(user_id=user_id, workspace_id=workspace_id)
        self.db.add(preferences)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Preferences created concurrently", user_id=str(user_id))
            preferences = await self.get(user_id, workspace_id)
        return preferences

    async def update(self, user_id: UUID, workspace_id: UUID, data: PreferencesUpdate) -> NotificationPreferences:
        """Apply the fields that were sent; hours and timezone are validated by the schema."""
        preferences = await self.get_or_create(user_id, workspace_id)
        preferences.update_from_dict(data.dict(exclude_unset=True, exclude_none=True))
        await self.db.commit()
        logger.info("Notification preferences updated", user_id=str(user_id), workspace_id=str(workspace_id))
        return preferences
