"""
Task comments.

Comments form one level of threads: a reply names its parent comment on the
same task. Deleting a comment removes its replies with it.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import BusinessRuleException, ResourceNotFoundException
from hamro_task.core.logger import get_logger
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.modules.notifications.models import EntityType, NotificationType
from hamro_task.modules.notifications.service import NotificationService

from .activity import ActivityAction, record_activity
from .models import Project, Task, TaskComment
from .tasks import TaskService

logger = get_logger(__name__)

PREVIEW_LENGTH = 50


def comment_preview(content: str) -> str:
    if len(content) > PREVIEW_LENGTH:
        return content[:PREVIEW_LENGTH] + "..."
    return content


class CommentService:
    """Service class for task comments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_comments(self, workspace_id: UUID, task_id: UUID) -> List[TaskComment]:
        """Comments and replies of a task, oldest first."""
        await TaskService(self.db).get_task(workspace_id, task_id)
        result = await self.db.execute(
            select(TaskComment)
            .where(TaskComment.task_id == task_id)
            .order_by(TaskComment.created_at, TaskComment.id)
        )
        return list(result.scalars().all())

    async def add_comment(
        self,
        workspace_id: UUID,
        task_id: UUID,
        user_id: UUID,
        content: str,
        parent_id: Optional[UUID] = None,
    ) -> TaskComment:
        """
        Comment on a task, or reply to one of its comments.

        The author of the parent comment hears about a reply; the task's
        creator and assignee hear about every other comment.

        Raises:
            ResourceNotFoundException: If the task or the parent comment is
                not part of this workspace's task
            BusinessRuleException: If the comment is blank or the parent is
                itself a reply
        """
        task = await TaskService(self.db).get_task(workspace_id, task_id)
        content = (content or "").strip()
        if not content:
            raise BusinessRuleException("Comment cannot be empty", code="EMPTY_COMMENT")

        parent = None
        if parent_id is not None:
            parent = await self.db.get(TaskComment, parent_id)
            if parent is None or parent.task_id != task_id:
                raise ResourceNotFoundException("Comment", str(parent_id))
            if parent.parent_id is not None:
                raise BusinessRuleException("Replies cannot be replied to", code="NESTED_REPLY")

        comment = TaskComment(task_id=task_id, user_id=user_id, content=content, parent_id=parent_id)
        self.db.add(comment)
        await self.db.flush()

        record_activity(
            self.db,
            workspace_id=workspace_id,
            actor_id=user_id,
            project_id=task.project_id,
            task_id=task.id,
            action_type=ActivityAction.COMMENTED,
            entity_type="comment",
            description=f"replied to a comment on {task.title}" if parent else f"commented on {task.title}",
        )
        await self.db.commit()

        change_feed.publish_row("task_comments", ChangeType.INSERT, new=comment.to_dict())
        logger.info("Comment added", comment_id=str(comment.id), task_id=str(task_id))
        await self._notify(workspace_id, task, comment, parent)
        return comment

    async def delete_comment(self, workspace_id: UUID, comment_id: UUID, user_id: UUID) -> None:
        """
        Delete one of the caller's comments together with its replies.

        Raises:
            ResourceNotFoundException: If no comment of the caller has that id
        """
        comment = await self.db.get(TaskComment, comment_id)
        if comment is None or comment.user_id != user_id:
            raise ResourceNotFoundException("Comment", str(comment_id))
        await TaskService(self.db).get_task(workspace_id, comment.task_id)

        result = await self.db.execute(select(TaskComment).where(TaskComment.parent_id == comment_id))
        removed = [*result.scalars().all(), comment]
        old = [row.to_dict() for row in removed]
        for row in removed:
            await self.db.delete(row)
        await self.db.commit()

        for row in old:
            change_feed.publish_row("task_comments", ChangeType.DELETE, old=row)
        logger.info("Comment deleted", comment_id=str(comment_id), replies=len(removed) - 1)

    async def _notify(
        self, workspace_id: UUID, task: Task, comment: TaskComment, parent: Optional[TaskComment]
    ) -> None:
        project = await self.db.get(Project, task.project_id)
        project_name = project.name if project is not None else ""
        metadata = {
            "project_id": str(task.project_id),
            "project_name": project_name,
            "task_id": str(task.id),
            "task_title": task.title,
        }
        notifications = NotificationService(self.db)
        preview = comment_preview(comment.content)
        notified = {comment.user_id}

        if parent is not None and parent.user_id not in notified:
            await notifications.notify(
                workspace_id=workspace_id,
                user_id=parent.user_id,
                actor_id=comment.user_id,
                notification_type=NotificationType.COMMENT_REPLY,
                title=f"New reply to your comment in {project_name}",
                body=f'on "{task.title}": "{preview}"',
                entity_type=EntityType.COMMENT,
                entity_id=comment.id,
                metadata=metadata,
            )
            notified.add(parent.user_id)

        for recipient in (task.created_by, task.assigned_to):
            if recipient is None or recipient in notified:
                continue
            await notifications.notify(
                workspace_id=workspace_id,
                user_id=recipient,
                actor_id=comment.user_id,
                notification_type=NotificationType.COMMENT_ADDED,
                title=f"New comment on '{task.title}' in {project_name}",
                body=f'"{preview}"',
                entity_type=EntityType.COMMENT,
                entity_id=comment.id,
                metadata=metadata,
            )
            notified.add(recipient)
