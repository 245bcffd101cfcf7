"""
Custom status service.

Statuses are the columns of a project board. Each carries a category; the
completed flag and the built-in task status enum both follow from it.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import BusinessRuleException, ResourceNotFoundException
from hamro_task.core.logger import get_logger
from hamro_task.core.models import enum_value, utcnow
from hamro_task.core.realtime import ChangeType, change_feed

from .models import ProjectStatus, StatusCategory, Task, TaskStatus
from .schemas import ReorderRequest, StatusCreate, StatusUpdate

logger = get_logger(__name__)

COMPLETED_CATEGORIES = (StatusCategory.DONE, StatusCategory.CANCELLED)


def category_is_completed(category) -> bool:
    return StatusCategory(enum_value(category)) in COMPLETED_CATEGORIES


def task_status_for(category) -> TaskStatus:
    """Built-in status mirrored on tasks sitting in a status of this category."""
    category = StatusCategory(enum_value(category))
    if category == StatusCategory.TODO:
        return TaskStatus.TODO
    if category == StatusCategory.ACTIVE:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.DONE


class StatusService:
    """Service class for project status operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_statuses(self, project_id: UUID) -> List[ProjectStatus]:
        result = await self.db.execute(
            select(ProjectStatus)
            .where(ProjectStatus.project_id == project_id)
            .order_by(ProjectStatus.position, ProjectStatus.created_at)
        )
        return list(result.scalars().all())

    async def get_status(self, project_id: UUID, status_id: UUID) -> ProjectStatus:
        status = await self.db.get(ProjectStatus, status_id)
        if status is None or status.project_id != project_id:
            raise ResourceNotFoundException("ProjectStatus", str(status_id))
        return status

    async def get_default_status(self, project_id: UUID) -> Optional[ProjectStatus]:
        """The default status, or the first one when none is flagged."""
        statuses = await self.list_statuses(project_id)
        for status in statuses:
            if status.is_default:
                return status
        return statuses[0] if statuses else None

    async def get_completed_statuses(self, project_id: UUID) -> List[ProjectStatus]:
        return [s for s in await self.list_statuses(project_id) if s.is_completed]

    async def _clear_default(self, project_id: UUID, keep_id: Optional[UUID] = None) -> None:
        query = update(ProjectStatus).where(ProjectStatus.project_id == project_id)
        if keep_id is not None:
            query = query.where(ProjectStatus.id != keep_id)
        await self.db.execute(query.values(is_default=False))

    async def create_status(self, project_id: UUID, data: StatusCreate) -> ProjectStatus:
        """
        Append a status at the end of the board.

        The category defaults to ``done`` for completed statuses and ``todo``
        otherwise; setting ``is_default`` clears the flag on the others.
        """
        max_position = await self.db.scalar(
            select(func.max(ProjectStatus.position)).where(ProjectStatus.project_id == project_id)
        )
        category = data.category or (StatusCategory.DONE if data.is_completed else StatusCategory.TODO)
        is_completed = category_is_completed(category)

        if data.is_default and not is_completed:
            await self._clear_default(project_id)

        status = ProjectStatus(
            project_id=project_id,
            name=data.name,
            color=data.color,
            position=(max_position + 1) if max_position is not None else 0,
            is_default=data.is_default and not is_completed,
            is_completed=is_completed,
            category=category.value,
        )
        self.db.add(status)
        await self.db.commit()

        change_feed.publish_row("project_statuses", ChangeType.INSERT, new=status.to_dict())
        logger.info("Status created", project_id=str(project_id), status_id=str(status.id))
        return status

    async def update_status(self, project_id: UUID, status_id: UUID, data: StatusUpdate) -> ProjectStatus:
        """
        Update a status.

        A category change rewrites ``is_completed`` (a completed status is
        never the default) and re-syncs the tasks sitting in the status:
        entering a completed category stamps ``completed_at`` on open tasks,
        leaving it clears the stamp.
        """
        status = await self.get_status(project_id, status_id)
        fields = data.dict(exclude_unset=True)

        if "name" in fields:
            status.name = fields["name"]
        if "color" in fields:
            status.color = fields["color"]

        category = fields.get("category")
        if category is not None and category.value != enum_value(status.category):
            status.category = category.value
            status.is_completed = category_is_completed(category)
            if status.is_completed:
                status.is_default = False
            await self._sync_tasks_for_category(status)

        if fields.get("is_default"):
            if status.is_completed:
                raise BusinessRuleException("A completed status cannot be the default status")
            await self._clear_default(project_id, keep_id=status.id)
            status.is_default = True
        elif fields.get("is_default") is False:
            status.is_default = False

        await self.db.commit()
        change_feed.publish_row("project_statuses", ChangeType.UPDATE, new=status.to_dict())
        return status

    async def _sync_tasks_for_category(self, status: ProjectStatus) -> None:
        enum_status = task_status_for(status.category).value
        if status.is_completed:
            await self.db.execute(
                update(Task)
                .where(Task.custom_status_id == status.id, Task.completed_at.is_(None))
                .values(completed_at=utcnow())
            )
        else:
            await self.db.execute(
                update(Task)
                .where(Task.custom_status_id == status.id)
                .values(completed_at=None)
            )
        await self.db.execute(
            update(Task).where(Task.custom_status_id == status.id).values(status=enum_status)
        )

    async def delete_status(self, project_id: UUID, status_id: UUID) -> ProjectStatus:
        """
        Delete a status, moving its tasks to another one.

        Tasks go to the default status, or to the first remaining status when
        the deleted one was the default.

        Returns:
            The status that received the tasks

        Raises:
            BusinessRuleException: When deleting the project's only status
        """
        status = await self.get_status(project_id, status_id)
        remaining = [s for s in await self.list_statuses(project_id) if s.id != status.id]
        if not remaining:
            raise BusinessRuleException(
                "A project needs at least one status", code="LAST_STATUS"
            )

        target = next((s for s in remaining if s.is_default), remaining[0])
        if status.is_default:
            target.is_default = True

        await self.db.execute(
            update(Task)
            .where(Task.custom_status_id == status.id)
            .values(custom_status_id=target.id)
        )
        await self._sync_tasks_for_category(target)
        old = status.to_dict()
        await self.db.delete(status)
        await self.db.commit()

        change_feed.publish_row("project_statuses", ChangeType.DELETE, old=old)
        logger.info(
            "Status deleted",
            project_id=str(project_id),
            status_id=str(status_id),
            reassigned_to=str(target.id),
        )
        return target

    async def reorder_statuses(self, project_id: UUID, data: ReorderRequest) -> List[ProjectStatus]:
        """Assign positions 0..n-1 in the given order; unknown ids are rejected."""
        statuses = {s.id: s for s in await self.list_statuses(project_id)}
        unknown = [str(i) for i in data.ids if i not in statuses]
        if unknown:
            raise ResourceNotFoundException("ProjectStatus", ", ".join(unknown))

        for position, status_id in enumerate(data.ids):
            statuses[status_id].position = position
        await self.db.commit()
        return await self.list_statuses(project_id)
