"""
Project service.

This module provides business logic for projects: listing, limit-gated
creation with the default status set, updates, archiving and deletion.
"""
from typing import List
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import ConfirmationRequiredException, ResourceNotFoundException
from hamro_task.core.logger import get_logger
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.core.schemas import OperationResult
from hamro_task.modules.subscription.limits import LIMIT_REACHED
from hamro_task.modules.subscription.service import SubscriptionService

from .activity import ActivityAction, record_activity
from .models import (
    DEFAULT_STATUSES,
    ActivityLog,
    Project,
    ProjectStatus,
    Task,
    TaskComment,
    TaskWorkSession,
)
from .schemas import ProjectCreate, ProjectUpdate

logger = get_logger(__name__)


class ProjectService:
    """Service class for project operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_projects(self, workspace_id: UUID, include_archived: bool = False) -> List[Project]:
        """
        Projects of a workspace, newest first.

        Args:
            workspace_id: Workspace ID
            include_archived: Also return archived projects

        Returns:
            List of projects
        """
        query = select(Project).where(Project.workspace_id == workspace_id)
        if not include_archived:
            query = query.where(Project.is_archived.is_(False))
        result = await self.db.execute(query.order_by(Project.created_at.desc()))
        return list(result.scalars().all())

    async def get_project(self, workspace_id: UUID, project_id: UUID) -> Project:
        """
        Get a project of the workspace.

        Raises:
            ResourceNotFoundException: If the project does not exist in this workspace
        """
        project = await self.db.get(Project, project_id)
        if project is None or project.workspace_id != workspace_id:
            raise ResourceNotFoundException("Project", str(project_id))
        return project

    async def create_project(self, workspace_id: UUID, data: ProjectCreate, actor_id: UUID) -> OperationResult:
        """
        Create a project with the default Todo / In Progress / Done statuses.

        Returns ``LIMIT_REACHED`` instead of creating anything when the plan
        allows no more projects.

        Args:
            workspace_id: Workspace ID
            data: Project fields
            actor_id: Creating user

        Returns:
            OperationResult carrying the project row on success
        """
        limits = await SubscriptionService(self.db).get_limits(workspace_id)
        if not limits.can_create_project:
            logger.info("Project limit reached", workspace_id=str(workspace_id), limit=limits.max_projects)
            return OperationResult.refused(
                f"Your {limits.plan_name} plan allows up to {limits.max_projects} projects. "
                "Upgrade to create more.",
                LIMIT_REACHED,
            )

        project = Project(
            workspace_id=workspace_id,
            name=data.name,
            description=data.description,
            color=data.color,
            created_by=actor_id,
        )
        self.db.add(project)
        await self.db.flush()

        for position, (name, color, is_default, is_completed, category) in enumerate(DEFAULT_STATUSES):
            self.db.add(ProjectStatus(
                project_id=project.id,
                name=name,
                color=color,
                position=position,
                is_default=is_default,
                is_completed=is_completed,
                category=category.value,
            ))

        record_activity(
            self.db,
            workspace_id=workspace_id,
            actor_id=actor_id,
            project_id=project.id,
            action_type=ActivityAction.CREATED,
            entity_type="project",
            description=f"created project {project.name}",
        )
        await self.db.commit()

        change_feed.publish_row("projects", ChangeType.INSERT, new=project.to_dict())
        logger.info("Project created", project_id=str(project.id), workspace_id=str(workspace_id))
        return OperationResult.ok(project=project.to_dict())

    async def update_project(self, workspace_id: UUID, project_id: UUID, data: ProjectUpdate, actor_id: UUID) -> Project:
        project = await self.get_project(workspace_id, project_id)
        project.update_from_dict(data.dict(exclude_unset=True))
        record_activity(
            self.db,
            workspace_id=workspace_id,
            actor_id=actor_id,
            project_id=project.id,
            action_type=ActivityAction.UPDATED,
            entity_type="project",
            description=f"updated project {project.name}",
        )
        await self.db.commit()
        change_feed.publish_row("projects", ChangeType.UPDATE, new=project.to_dict())
        return project

    async def archive_project(self, workspace_id: UUID, project_id: UUID, actor_id: UUID, archived: bool = True) -> Project:
        """Archive or restore a project; archived projects leave the dashboard."""
        project = await self.get_project(workspace_id, project_id)
        project.is_archived = archived
        record_activity(
            self.db,
            workspace_id=workspace_id,
            actor_id=actor_id,
            project_id=project.id,
            action_type=ActivityAction.ARCHIVED if archived else ActivityAction.UPDATED,
            entity_type="project",
            description=f"{'archived' if archived else 'restored'} project {project.name}",
        )
        await self.db.commit()
        change_feed.publish_row("projects", ChangeType.UPDATE, new=project.to_dict())
        logger.info("Project archive state changed", project_id=str(project_id), archived=archived)
        return project

    async def delete_project(self, workspace_id: UUID, project_id: UUID, confirm: bool = False) -> None:
        """
        Delete a project with its statuses, tasks and activity.

        Raises:
            ConfirmationRequiredException: If ``confirm`` is not set
            ResourceNotFoundException: If the project does not exist
        """
        if not confirm:
            raise ConfirmationRequiredException("delete project")

        project = await self.get_project(workspace_id, project_id)
        old = project.to_dict()

        task_ids = select(Task.id).where(Task.project_id == project_id)
        await self.db.execute(delete(TaskWorkSession).where(TaskWorkSession.task_id.in_(task_ids)))
        await self.db.execute(delete(TaskComment).where(TaskComment.task_id.in_(task_ids)))
        await self.db.execute(delete(ActivityLog).where(ActivityLog.project_id == project_id))
        await self.db.execute(delete(Task).where(Task.project_id == project_id))
        await self.db.execute(delete(ProjectStatus).where(ProjectStatus.project_id == project_id))
        await self.db.execute(delete(Project).where(Project.id == project_id))
        await self.db.commit()

        change_feed.publish_row("projects", ChangeType.DELETE, old=old)
        logger.info("Project deleted", project_id=str(project_id), workspace_id=str(workspace_id))
