"""
Tests for task comments and their notifications.
"""
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select

from hamro_task.core.exceptions import BusinessRuleException, ResourceNotFoundException
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.modules.notifications.links import notification_path
from hamro_task.modules.notifications.models import Notification, NotificationType
from hamro_task.modules.projects.activity import ActivityAction
from hamro_task.modules.projects.comments import CommentService, comment_preview
from hamro_task.modules.projects.models import ActivityLog, TaskComment
from hamro_task.modules.projects.schemas import TaskCreate
from hamro_task.modules.projects.tasks import TaskService


@pytest_asyncio.fixture
async def task(db_session, workspace, project, owner, member):
    return await TaskService(db_session).create_task(
        workspace.id, project.id, TaskCreate(title="Fix login", assigned_to=member.id), owner.id
    )


async def notifications_of(db, user, notification_type):
    result = await db.execute(
        select(Notification).where(
            Notification.user_id == user.id,
            Notification.type == notification_type.value,
        )
    )
    return list(result.scalars().all())


class TestCommentPreview:
    def test_short_content_is_kept(self):
        assert comment_preview("looks good") == "looks good"

    def test_long_content_is_cut(self):
        preview = comment_preview("x" * 80)

        assert preview == "x" * 50 + "..."


class TestAddComment:
    async def test_comment_is_listed(self, db_session, workspace, admin, task):
        service = CommentService(db_session)

        comment = await service.add_comment(workspace.id, task.id, admin.id, "  Can we ship today? ")

        assert comment.content == "Can we ship today?"
        assert [c.id for c in await service.list_comments(workspace.id, task.id)] == [comment.id]

    async def test_blank_comment_is_rejected(self, db_session, workspace, admin, task):
        with pytest.raises(BusinessRuleException) as exc_info:
            await CommentService(db_session).add_comment(workspace.id, task.id, admin.id, "   ")

        assert exc_info.value.code == "EMPTY_COMMENT"

    async def test_task_of_other_workspace(self, db_session, workspace, admin, task):
        with pytest.raises(ResourceNotFoundException):
            await CommentService(db_session).add_comment(uuid4(), task.id, admin.id, "hello")

    async def test_writes_activity_and_publishes(self, db_session, workspace, admin, task):
        subscription = change_feed.subscribe("task_comments", f"task_id=eq.{task.id}")

        comment = await CommentService(db_session).add_comment(workspace.id, task.id, admin.id, "on it")

        entry = await db_session.scalar(
            select(ActivityLog).where(ActivityLog.action_type == ActivityAction.COMMENTED)
        )
        assert entry.task_id == task.id
        assert entry.actor_id == admin.id
        assert entry.entity_type == "comment"
        event = await subscription.get(timeout=1)
        assert event.type == ChangeType.INSERT
        assert event.new["id"] == str(comment.id)

    async def test_creator_and_assignee_are_notified(self, db_session, workspace, owner, admin, member, task):
        comment = await CommentService(db_session).add_comment(workspace.id, task.id, admin.id, "Blocked on API")

        for user in (owner, member):
            received = await notifications_of(db_session, user, NotificationType.COMMENT_ADDED)
            assert len(received) == 1
            assert received[0].entity_id == comment.id
            assert received[0].extra["task_id"] == str(task.id)
        assert await notifications_of(db_session, admin, NotificationType.COMMENT_ADDED) == []

    async def test_assignee_commenting_is_not_notified(self, db_session, workspace, owner, member, task):
        await CommentService(db_session).add_comment(workspace.id, task.id, member.id, "Started")

        assert await notifications_of(db_session, member, NotificationType.COMMENT_ADDED) == []
        assert len(await notifications_of(db_session, owner, NotificationType.COMMENT_ADDED)) == 1

    async def test_notification_links_to_task(self, db_session, workspace, project, admin, member, task):
        await CommentService(db_session).add_comment(workspace.id, task.id, admin.id, "see logs")

        notification = (await notifications_of(db_session, member, NotificationType.COMMENT_ADDED))[0]
        path = notification_path(workspace.id, notification.entity_type, notification.entity_id, notification.extra)

        assert path == f"/workspace/{workspace.id}/projects/{project.id}/tasks/{task.id}"


class TestReplies:
    async def test_reply_notifies_parent_author(self, db_session, workspace, owner, admin, member, viewer, task):
        service = CommentService(db_session)
        parent = await service.add_comment(workspace.id, task.id, viewer.id, "Which browser?")

        reply = await service.add_comment(workspace.id, task.id, admin.id, "Firefox", parent_id=parent.id)

        replies = await notifications_of(db_session, viewer, NotificationType.COMMENT_REPLY)
        assert [n.entity_id for n in replies] == [reply.id]
        assert reply.parent_id == parent.id
        # creator and assignee hear about the reply as a comment, once each
        assert len(await notifications_of(db_session, owner, NotificationType.COMMENT_ADDED)) == 2
        assert len(await notifications_of(db_session, member, NotificationType.COMMENT_ADDED)) == 2

    async def test_parent_author_is_not_notified_twice(self, db_session, workspace, owner, admin, member, task):
        service = CommentService(db_session)
        parent = await service.add_comment(workspace.id, task.id, member.id, "Need access")

        await service.add_comment(workspace.id, task.id, admin.id, "Granted", parent_id=parent.id)

        assert len(await notifications_of(db_session, member, NotificationType.COMMENT_REPLY)) == 1
        assert await notifications_of(db_session, member, NotificationType.COMMENT_ADDED) == []

    async def test_replying_to_own_comment_is_silent(self, db_session, workspace, viewer, task):
        service = CommentService(db_session)
        parent = await service.add_comment(workspace.id, task.id, viewer.id, "first")

        await service.add_comment(workspace.id, task.id, viewer.id, "second", parent_id=parent.id)

        assert await notifications_of(db_session, viewer, NotificationType.COMMENT_REPLY) == []

    async def test_parent_must_belong_to_task(self, db_session, workspace, project, owner, admin, task):
        other = await TaskService(db_session).create_task(
            workspace.id, project.id, TaskCreate(title="Other"), owner.id
        )
        service = CommentService(db_session)
        parent = await service.add_comment(workspace.id, other.id, admin.id, "elsewhere")

        with pytest.raises(ResourceNotFoundException):
            await service.add_comment(workspace.id, task.id, admin.id, "re", parent_id=parent.id)

    async def test_replies_are_one_level_deep(self, db_session, workspace, admin, member, task):
        service = CommentService(db_session)
        parent = await service.add_comment(workspace.id, task.id, admin.id, "question")
        reply = await service.add_comment(workspace.id, task.id, member.id, "answer", parent_id=parent.id)

        with pytest.raises(BusinessRuleException) as exc_info:
            await service.add_comment(workspace.id, task.id, admin.id, "thanks", parent_id=reply.id)

        assert exc_info.value.code == "NESTED_REPLY"


class TestDeleteComment:
    async def test_only_author_can_delete(self, db_session, workspace, admin, member, task):
        service = CommentService(db_session)
        comment = await service.add_comment(workspace.id, task.id, admin.id, "mine")

        with pytest.raises(ResourceNotFoundException):
            await service.delete_comment(workspace.id, comment.id, member.id)

    async def test_delete_removes_replies(self, db_session, workspace, admin, member, task):
        service = CommentService(db_session)
        parent = await service.add_comment(workspace.id, task.id, admin.id, "question")
        await service.add_comment(workspace.id, task.id, member.id, "answer", parent_id=parent.id)
        subscription = change_feed.subscribe("task_comments")

        await service.delete_comment(workspace.id, parent.id, admin.id)

        assert await service.list_comments(workspace.id, task.id) == []
        deleted = {(await subscription.get(timeout=1)).old["id"] for _ in range(2)}
        assert str(parent.id) in deleted

    async def test_deleting_task_removes_comments(self, db_session, workspace, admin, task):
        await CommentService(db_session).add_comment(workspace.id, task.id, admin.id, "bye")

        await TaskService(db_session).delete_task(workspace.id, task.id)

        remaining = await db_session.execute(select(TaskComment).where(TaskComment.task_id == task.id))
        assert remaining.scalars().all() == []
