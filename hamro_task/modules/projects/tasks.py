"""
Task service.

Task status, ``completed_at`` and ``first_started_at`` are never written by
callers; they follow from the custom status a task is moved into.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import BusinessRuleException, ResourceNotFoundException
from hamro_task.core.logger import get_logger
from hamro_task.core.models import as_utc, utcnow
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.modules.notifications.models import EntityType, NotificationType
from hamro_task.modules.notifications.service import NotificationService
from hamro_task.modules.workspace.models import WorkspaceMember

from .activity import ActivityAction, record_activity
from .models import Project, ProjectStatus, Task, TaskComment, TaskWorkSession
from .schemas import ReorderRequest, TaskCreate, TaskUpdate
from .statuses import StatusService, task_status_for

logger = get_logger(__name__)


def apply_status(task: Task, status: ProjectStatus, now: datetime) -> None:
    """
    Put a task into a custom status and derive the dependent fields.

    Entering a completed status stamps ``completed_at``; leaving one clears
    it. The first move into a status that is neither the default nor
    completed stamps ``first_started_at``, which is never cleared.
    """
    task.custom_status_id = status.id
    task.status = task_status_for(status.category).value
    if status.is_completed:
        if task.completed_at is None:
            task.completed_at = now
    else:
        task.completed_at = None
        if not status.is_default and task.first_started_at is None:
            task.first_started_at = now


class TaskService:
    """Service class for task operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _project(self, workspace_id: UUID, project_id: UUID) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None or project.workspace_id != workspace_id:
            raise ResourceNotFoundException("Project", str(project_id))
        return project

    async def _check_assignee(self, workspace_id: UUID, user_id: Optional[UUID]) -> None:
        if user_id is None:
            return
        member = await self.db.scalar(
            select(WorkspaceMember.id).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        )
        if member is None:
            raise BusinessRuleException("Tasks can only be assigned to workspace members",
                                        code="ASSIGNEE_NOT_MEMBER")

    async def list_tasks(self, workspace_id: UUID, project_id: UUID) -> List[Task]:
        await self._project(workspace_id, project_id)
        result = await self.db.execute(
            select(Task)
            .where(Task.project_id == project_id)
            .order_by(Task.position, Task.created_at)
        )
        return list(result.scalars().all())

    async def get_task(self, workspace_id: UUID, task_id: UUID) -> Task:
        """
        Get a task of the workspace.

        Raises:
            ResourceNotFoundException: If the task is not in this workspace
        """
        task = await self.db.get(Task, task_id)
        if task is None:
            raise ResourceNotFoundException("Task", str(task_id))
        project = await self.db.get(Project, task.project_id)
        if project is None or project.workspace_id != workspace_id:
            raise ResourceNotFoundException("Task", str(task_id))
        return task

    async def create_task(self, workspace_id: UUID, project_id: UUID, data: TaskCreate, actor_id: UUID) -> Task:
        """
        Create a task at the end of the project's list.

        The task starts in ``data.custom_status_id`` or the project's default
        status.
        """
        project = await self._project(workspace_id, project_id)
        await self._check_assignee(workspace_id, data.assigned_to)

        statuses = StatusService(self.db)
        if data.custom_status_id is not None:
            status = await statuses.get_status(project_id, data.custom_status_id)
        else:
            status = await statuses.get_default_status(project_id)

        max_position = await self.db.scalar(
            select(func.max(Task.position)).where(Task.project_id == project_id)
        )
        task = Task(
            project_id=project_id,
            title=data.title,
            description=data.description,
            priority=data.priority.value,
            assigned_to=data.assigned_to,
            created_by=actor_id,
            due_date=data.due_date,
            position=(max_position + 1) if max_position is not None else 0,
        )
        if status is not None:
            apply_status(task, status, utcnow())
        self.db.add(task)
        await self.db.flush()

        record_activity(
            self.db,
            workspace_id=workspace_id,
            actor_id=actor_id,
            project_id=project_id,
            task_id=task.id,
            action_type=ActivityAction.CREATED,
            entity_type="task",
            description=f"created task {task.title}",
        )
        await self.db.commit()

        change_feed.publish_row("tasks", ChangeType.INSERT, new=task.to_dict())
        logger.info("Task created", task_id=str(task.id), project_id=str(project_id))

        if task.assigned_to is not None:
            await self._notify_assigned(workspace_id, task, project, actor_id)
        return task

    async def update_task(self, workspace_id: UUID, task_id: UUID, data: TaskUpdate, actor_id: UUID) -> Task:
        """Apply editable fields; status and derived timestamps are untouched."""
        task = await self.get_task(workspace_id, task_id)
        fields = data.dict(exclude_unset=True)
        if "assigned_to" in fields:
            await self._check_assignee(workspace_id, fields["assigned_to"])
        if fields.get("priority") is not None:
            fields["priority"] = fields["priority"].value

        reassigned = "assigned_to" in fields and fields["assigned_to"] != task.assigned_to
        task.update_from_dict(fields)

        record_activity(
            self.db,
            workspace_id=workspace_id,
            actor_id=actor_id,
            project_id=task.project_id,
            task_id=task.id,
            action_type=ActivityAction.ASSIGNED if reassigned else ActivityAction.UPDATED,
            entity_type="task",
            description=f"updated task {task.title}",
        )
        await self.db.commit()
        change_feed.publish_row("tasks", ChangeType.UPDATE, new=task.to_dict())

        if reassigned and task.assigned_to is not None:
            project = await self.db.get(Project, task.project_id)
            await self._notify_assigned(workspace_id, task, project, actor_id)
        return task

    async def move_to_status(self, workspace_id: UUID, task_id: UUID, status_id: UUID, actor_id: UUID) -> Task:
        """
        Move a task into another custom status of its project.

        Completing a task also closes any running work session.
        """
        task = await self.get_task(workspace_id, task_id)
        status = await StatusService(self.db).get_status(task.project_id, status_id)
        was_completed = task.completed_at is not None
        now = utcnow()

        apply_status(task, status, now)
        if status.is_completed:
            await self._close_open_sessions(task.id, now)

        completed_now = status.is_completed and not was_completed
        record_activity(
            self.db,
            workspace_id=workspace_id,
            actor_id=actor_id,
            project_id=task.project_id,
            task_id=task.id,
            action_type=ActivityAction.COMPLETED if completed_now else ActivityAction.STATUS_CHANGED,
            entity_type="task",
            description=f"moved task {task.title} to {status.name}",
        )
        await self.db.commit()
        change_feed.publish_row("tasks", ChangeType.UPDATE, new=task.to_dict())

        notifications = NotificationService(self.db)
        metadata = {"project_id": str(task.project_id), "status": status.name}
        if task.assigned_to is not None:
            await notifications.notify(
                workspace_id=workspace_id,
                user_id=task.assigned_to,
                actor_id=actor_id,
                notification_type=NotificationType.TASK_STATUS_CHANGED,
                title=f"{task.title} moved to {status.name}",
                entity_type=EntityType.TASK,
                entity_id=task.id,
                metadata=metadata,
            )
        if completed_now and task.created_by is not None and task.created_by != task.assigned_to:
            await notifications.notify(
                workspace_id=workspace_id,
                user_id=task.created_by,
                actor_id=actor_id,
                notification_type=NotificationType.TASK_COMPLETED,
                title=f"{task.title} was completed",
                entity_type=EntityType.TASK,
                entity_id=task.id,
                metadata=metadata,
            )
        return task

    async def delete_task(self, workspace_id: UUID, task_id: UUID) -> None:
        task = await self.get_task(workspace_id, task_id)
        old = task.to_dict()
        await self.db.execute(delete(TaskWorkSession).where(TaskWorkSession.task_id == task_id))
        await self.db.execute(delete(TaskComment).where(TaskComment.task_id == task_id))
        await self.db.delete(task)
        await self.db.commit()
        change_feed.publish_row("tasks", ChangeType.DELETE, old=old)
        logger.info("Task deleted", task_id=str(task_id))

    async def reorder_tasks(self, workspace_id: UUID, project_id: UUID, data: ReorderRequest) -> List[Task]:
        """Assign positions 0..n-1 in the given order."""
        tasks = {t.id: t for t in await self.list_tasks(workspace_id, project_id)}
        unknown = [str(i) for i in data.ids if i not in tasks]
        if unknown:
            raise ResourceNotFoundException("Task", ", ".join(unknown))
        for position, task_id in enumerate(data.ids):
            tasks[task_id].position = position
        await self.db.commit()
        return await self.list_tasks(workspace_id, project_id)

    async def start_timer(self, workspace_id: UUID, task_id: UUID, user_id: UUID) -> TaskWorkSession:
        """
        Open a work session; an already running session of the user is returned as is.

        The first start stamps ``first_started_at``.
        """
        task = await self.get_task(workspace_id, task_id)
        running = await self._open_session(task_id, user_id)
        if running is not None:
            return running

        now = utcnow()
        if task.first_started_at is None:
            task.first_started_at = now
        session = TaskWorkSession(task_id=task_id, user_id=user_id, started_at=now)
        self.db.add(session)
        await self.db.commit()
        return session

    async def stop_timer(self, workspace_id: UUID, task_id: UUID, user_id: UUID) -> Optional[TaskWorkSession]:
        """Close the user's running session; None when nothing was running."""
        await self.get_task(workspace_id, task_id)
        session = await self._open_session(task_id, user_id)
        if session is None:
            return None
        _close(session, utcnow())
        await self.db.commit()
        return session

    async def _open_session(self, task_id: UUID, user_id: UUID) -> Optional[TaskWorkSession]:
        result = await self.db.execute(
            select(TaskWorkSession).where(
                TaskWorkSession.task_id == task_id,
                TaskWorkSession.user_id == user_id,
                TaskWorkSession.ended_at.is_(None),
            )
        )
        return result.scalars().first()

    async def _close_open_sessions(self, task_id: UUID, now: datetime) -> None:
        result = await self.db.execute(
            select(TaskWorkSession).where(
                TaskWorkSession.task_id == task_id,
                TaskWorkSession.ended_at.is_(None),
            )
        )
        for session in result.scalars().all():
            _close(session, now)

    async def _notify_assigned(self, workspace_id: UUID, task: Task, project: Optional[Project], actor_id: UUID) -> None:
        await NotificationService(self.db).notify(
            workspace_id=workspace_id,
            user_id=task.assigned_to,
            actor_id=actor_id,
            notification_type=NotificationType.TASK_ASSIGNED,
            title=f"You were assigned {task.title}",
            body=project.name if project is not None else None,
            entity_type=EntityType.TASK,
            entity_id=task.id,
            metadata={"project_id": str(task.project_id)},
        )


def _close(session: TaskWorkSession, now: datetime) -> None:
    session.ended_at = now
    session.duration_seconds = max(0, int((now - as_utc(session.started_at)).total_seconds()))
