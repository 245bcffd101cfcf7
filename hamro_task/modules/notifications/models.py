"""
Notification, preference and push subscription models.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hamro_task.core.models import BaseModel


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_COMPLETED = "task_completed"
    COMMENT_ADDED = "comment_added"
    COMMENT_REPLY = "comment_reply"
    PROJECT_UPDATED = "project_updated"
    MEMBER_JOINED = "member_joined"
    MEMBER_REMOVED = "member_removed"
    CHAT_MENTION = "chat_mention"
    DUE_DATE_REMINDER = "due_date_reminder"


class EntityType(str, Enum):
    TASK = "task"
    PROJECT = "project"
    COMMENT = "comment"
    CHAT = "chat"
    WORKSPACE = "workspace"
    MEMBER = "member"


class Notification(BaseModel):
    """A per-user event record inside one workspace."""

    __tablename__ = "notifications"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    type: Mapped[NotificationType] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text)
    entity_type: Mapped[Optional[EntityType]] = mapped_column(String(20))
    entity_id: Mapped[Optional[UUID]] = mapped_column()
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    pushed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class NotificationPreferences(BaseModel):
    """Which notifications a user wants in one workspace, and when."""

    __tablename__ = "notification_preferences"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    task_assigned: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    task_status_changed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    task_completed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    comment_added: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    comment_reply: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    project_updates: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    member_updates: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    chat_mentions: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    due_date_reminders: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    push_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    quiet_hours_start: Mapped[int] = mapped_column(Integer, default=22, nullable=False)
    quiet_hours_end: Mapped[int] = mapped_column(Integer, default=7, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="Asia/Kathmandu", nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "workspace_id", name="uq_notification_preferences"),
    )


class PushSubscription(BaseModel):
    """A device token or web push endpoint registered by a user."""

    __tablename__ = "push_subscriptions"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    endpoint: Mapped[str] = mapped_column(String(1000), nullable=False)
    platform: Mapped[str] = mapped_column(String(20), default="expo", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="uq_push_subscription_endpoint"),
    )
