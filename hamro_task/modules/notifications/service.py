"""
Notification service.

This module provides the notification feed (every unread row plus a window
of recent read ones), paging into older read rows, read-state changes,
creation filtered by preferences, and the project activity feed.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.config import settings
from hamro_task.core.exceptions import ResourceNotFoundException
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import record_notification
from hamro_task.core.models import as_utc, enum_value, utcnow
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.modules.projects.models import ActivityLog, Task
from hamro_task.modules.workspace.models import WorkspaceRoleEnum

from .models import EntityType, Notification, NotificationType
from .preferences import PreferencesService, allows

logger = get_logger(__name__)

ACTIVITY_FEED_SIZE = 20


@dataclass
class NotificationFeed:
    """Unread rows and the most recent read rows, newest first."""

    notifications: List[Notification] = field(default_factory=list)
    unread_count: int = 0
    has_more: bool = False

    @property
    def oldest_read_at(self) -> Optional[datetime]:
        read = [as_utc(n.created_at) for n in self.notifications if n.is_read]
        return min(read) if read else None

    def merge_older(self, page: Iterable[Notification]) -> int:
        """Append an older page, skipping ids already held; returns rows added."""
        held = {n.id for n in self.notifications}
        added = [n for n in page if n.id not in held]
        self.notifications.extend(added)
        self.notifications.sort(key=lambda n: as_utc(n.created_at), reverse=True)
        return len(added)


class NotificationService:
    """Service class for notification operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _scope(self, user_id: UUID, workspace_id: UUID):
        return (Notification.user_id == user_id, Notification.workspace_id == workspace_id)

    async def get_feed(self, user_id: UUID, workspace_id: UUID) -> NotificationFeed:
        """
        All unread notifications plus the most recent read ones.

        ``has_more`` is set when the read window came back full, meaning
        older read rows may exist.
        """
        window = settings.notification_read_window
        unread = await self.db.execute(
            select(Notification)
            .where(*self._scope(user_id, workspace_id), Notification.is_read.is_(False))
            .order_by(Notification.created_at.desc())
        )
        read = await self.db.execute(
            select(Notification)
            .where(*self._scope(user_id, workspace_id), Notification.is_read.is_(True))
            .order_by(Notification.created_at.desc())
            .limit(window)
        )
        unread_rows = list(unread.scalars().all())
        read_rows = list(read.scalars().all())

        rows = sorted(unread_rows + read_rows, key=lambda n: as_utc(n.created_at), reverse=True)
        return NotificationFeed(
            notifications=rows,
            unread_count=len(unread_rows),
            has_more=len(read_rows) == window,
        )

    async def load_older(
        self,
        user_id: UUID,
        workspace_id: UUID,
        before: datetime,
        exclude_ids: Iterable[UUID] = (),
    ) -> List[Notification]:
        """
        A page of read notifications strictly older than ``before``.

        Args:
            before: ``created_at`` of the oldest read notification held
            exclude_ids: Ids already held; never returned again

        Returns:
            Up to one page, newest first
        """
        result = await self.db.execute(
            select(Notification)
            .where(
                *self._scope(user_id, workspace_id),
                Notification.is_read.is_(True),
                Notification.created_at < as_utc(before),
            )
            .order_by(Notification.created_at.desc())
            .limit(settings.notification_page_size)
        )
        held = set(exclude_ids)
        return [n for n in result.scalars().all() if n.id not in held]

    async def unread_count(self, user_id: UUID, workspace_id: UUID) -> int:
        count = await self.db.scalar(
            select(func.count(Notification.id)).where(
                *self._scope(user_id, workspace_id), Notification.is_read.is_(False)
            )
        )
        return count or 0

    async def mark_as_read(self, user_id: UUID, notification_id: UUID) -> Notification:
        """
        Raises:
            ResourceNotFoundException: If the notification is not the user's
        """
        notification = await self.db.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise ResourceNotFoundException("Notification", str(notification_id))
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await self.db.commit()
            change_feed.publish_row("notifications", ChangeType.UPDATE, new=notification.to_dict())
        return notification

    async def mark_all_as_read(self, user_id: UUID, workspace_id: UUID) -> int:
        """Returns the number of notifications changed."""
        result = await self.db.execute(
            update(Notification)
            .where(*self._scope(user_id, workspace_id), Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete(self, user_id: UUID, notification_id: UUID) -> None:
        notification = await self.db.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise ResourceNotFoundException("Notification", str(notification_id))
        old = notification.to_dict()
        await self.db.execute(delete(Notification).where(Notification.id == notification_id))
        await self.db.commit()
        change_feed.publish_row("notifications", ChangeType.DELETE, old=old)

    async def notify(
        self,
        *,
        workspace_id: UUID,
        user_id: UUID,
        notification_type: NotificationType,
        title: str,
        body: Optional[str] = None,
        actor_id: Optional[UUID] = None,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """
        Create a notification unless the recipient turned this type off.

        Nobody is notified about their own actions.

        Returns:
            The notification, or None when it was suppressed
        """
        if actor_id is not None and actor_id == user_id:
            return None

        preferences = await PreferencesService(self.db).get(user_id, workspace_id)
        if not allows(preferences, notification_type):
            logger.debug("Notification suppressed by preferences", user_id=str(user_id),
                         type=enum_value(notification_type))
            return None

        notification = Notification(
            workspace_id=workspace_id,
            user_id=user_id,
            actor_id=actor_id,
            type=enum_value(notification_type),
            title=title,
            body=body,
            entity_type=enum_value(entity_type),
            entity_id=entity_id,
            extra=metadata or {},
        )
        self.db.add(notification)
        await self.db.commit()

        record_notification(enum_value(notification_type))
        change_feed.publish_row("notifications", ChangeType.INSERT, new=notification.to_dict())
        return notification

    async def project_activity(
        self,
        project_id: UUID,
        user_id: UUID,
        role: WorkspaceRoleEnum,
    ) -> List[ActivityLog]:
        """
        Latest activity of a project.

        Members and viewers only see project-level rows and rows about tasks
        assigned to them.
        """
        query = select(ActivityLog).where(ActivityLog.project_id == project_id)
        if not WorkspaceRoleEnum(role).is_manager:
            query = query.outerjoin(Task, Task.id == ActivityLog.task_id).where(
                or_(ActivityLog.task_id.is_(None), Task.assigned_to == user_id)
            )
        result = await self.db.execute(
            query.order_by(ActivityLog.created_at.desc()).limit(ACTIVITY_FEED_SIZE)
        )
        return list(result.scalars().all())
