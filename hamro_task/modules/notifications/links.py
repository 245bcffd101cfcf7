"""Deep links from a notification to the screen that shows its entity."""
from typing import Any, Dict, Optional
from uuid import UUID

from hamro_task.core.config import settings
from hamro_task.core.models import enum_value

from .models import EntityType


def notification_path(
    workspace_id: UUID,
    entity_type: Optional[str],
    entity_id: Optional[UUID],
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """
    App path for a notification target.

    Tasks and comments need ``project_id`` (and ``task_id`` for comments) in
    the metadata; chat targets use ``channel_id`` or ``conversation_id``.
    """
    base = f"/workspace/{workspace_id}"
    meta = metadata or {}
    kind = enum_value(entity_type)

    if kind == EntityType.TASK.value:
        return f"{base}/projects/{meta.get('project_id', '')}/tasks/{entity_id}"
    if kind == EntityType.PROJECT.value:
        return f"{base}/projects/{entity_id}"
    if kind == EntityType.COMMENT.value:
        return f"{base}/projects/{meta.get('project_id', '')}/tasks/{meta.get('task_id', '')}"
    if kind == EntityType.CHAT.value:
        if meta.get("is_dm") and meta.get("conversation_id"):
            return f"{base}/chat?dm={meta['conversation_id']}"
        if meta.get("channel_id"):
            return f"{base}/chat?channel={meta['channel_id']}"
        return f"{base}/chat"
    if kind == EntityType.MEMBER.value:
        return f"{base}/members"
    return base


def notification_url(notification) -> str:
    """Absolute URL for a Notification row."""
    path = notification_path(
        notification.workspace_id,
        notification.entity_type,
        notification.entity_id,
        notification.extra,
    )
    return settings.public_app_url.rstrip("/") + path
