"""Activity log writer shared by the project and task services."""
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from .models import ActivityLog


class ActivityAction:
    CREATED = "created"
    UPDATED = "updated"
    ARCHIVED = "archived"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"
    COMPLETED = "completed"
    ASSIGNED = "assigned"
    COMMENTED = "commented"


def record_activity(
    db: AsyncSession,
    *,
    workspace_id: UUID,
    actor_id: Optional[UUID],
    action_type: str,
    entity_type: str,
    description: str,
    project_id: Optional[UUID] = None,
    task_id: Optional[UUID] = None,
) -> ActivityLog:
    """Add an activity row to the session; committed with the change it describes."""
    entry = ActivityLog(
        workspace_id=workspace_id,
        actor_id=actor_id,
        project_id=project_id,
        task_id=task_id,
        action_type=action_type,
        entity_type=entity_type,
        description=description,
    )
    db.add(entry)
    return entry
