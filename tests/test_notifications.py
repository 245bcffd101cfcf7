"""
Tests for the notification feed, preferences, push tokens and deep links.
"""
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from pydantic import ValidationError

from hamro_task.core.exceptions import ResourceNotFoundException
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.modules.notifications.links import notification_path, notification_url
from hamro_task.modules.notifications.models import (
    EntityType,
    Notification,
    NotificationPreferences,
    NotificationType,
)
from hamro_task.modules.notifications.preferences import PreferencesService, allows, is_quiet_time
from hamro_task.modules.notifications.push import PushSubscriptionService
from hamro_task.modules.notifications.schemas import PreferencesUpdate
from hamro_task.modules.notifications.service import NotificationService
from hamro_task.modules.projects.models import ActivityLog, Task
from hamro_task.modules.workspace.models import WorkspaceRoleEnum
from tests.conftest import now_utc


def quiet_prefs(start=22, end=7, enabled=True):
    return NotificationPreferences(
        quiet_hours_enabled=enabled,
        quiet_hours_start=start,
        quiet_hours_end=end,
        timezone="Asia/Kathmandu",
    )


async def add_notifications(db, workspace, user, count, is_read, start_minutes_ago=0):
    rows = []
    for n in range(count):
        row = Notification(
            workspace_id=workspace.id,
            user_id=user.id,
            type=NotificationType.TASK_ASSIGNED.value,
            title=f"n{start_minutes_ago + n}",
            is_read=is_read,
            extra={},
            created_at=now_utc() - timedelta(minutes=start_minutes_ago + n),
        )
        db.add(row)
        rows.append(row)
    await db.commit()
    return rows


class TestPreferenceRules:
    def test_no_preferences_allows_everything(self):
        assert allows(None, NotificationType.CHAT_MENTION)

    def test_disabled_type_is_refused(self):
        prefs = NotificationPreferences(chat_mentions=False, task_assigned=True)

        assert not allows(prefs, NotificationType.CHAT_MENTION)
        assert allows(prefs, "task_assigned")

    def test_quiet_hours_wrap_midnight(self):
        prefs = quiet_prefs()

        # 22:45 and 03:45 in Kathmandu
        assert is_quiet_time(prefs, datetime(2026, 3, 11, 17, 0, tzinfo=UTC))
        assert is_quiet_time(prefs, datetime(2026, 3, 11, 22, 0, tzinfo=UTC))
        # 10:00 in Kathmandu
        assert not is_quiet_time(prefs, datetime(2026, 3, 11, 4, 15, tzinfo=UTC))

    def test_daytime_window(self):
        prefs = quiet_prefs(start=9, end=17)

        assert is_quiet_time(prefs, datetime(2026, 3, 11, 4, 15, tzinfo=UTC))
        assert not is_quiet_time(prefs, datetime(2026, 3, 11, 17, 0, tzinfo=UTC))

    def test_equal_hours_mean_no_window(self):
        assert not is_quiet_time(quiet_prefs(start=8, end=8), datetime(2026, 3, 11, 2, 30, tzinfo=UTC))

    def test_disabled_quiet_hours(self):
        assert not is_quiet_time(quiet_prefs(enabled=False), datetime(2026, 3, 11, 17, 0, tzinfo=UTC))
        assert not is_quiet_time(None)

    def test_update_validates_hours_and_timezone(self):
        with pytest.raises(ValidationError):
            PreferencesUpdate(quiet_hours_start=24)
        with pytest.raises(ValidationError):
            PreferencesUpdate(timezone="Mars/Olympus")


class TestLinks:
    def test_task_link(self):
        ws, task, proj = uuid4(), uuid4(), uuid4()

        path = notification_path(ws, EntityType.TASK, task, {"project_id": str(proj)})

        assert path == f"/workspace/{ws}/projects/{proj}/tasks/{task}"

    def test_comment_links_to_task(self):
        ws, proj, task = uuid4(), uuid4(), uuid4()

        path = notification_path(ws, "comment", uuid4(), {"project_id": str(proj), "task_id": str(task)})

        assert path == f"/workspace/{ws}/projects/{proj}/tasks/{task}"

    def test_chat_links(self):
        ws = uuid4()

        assert notification_path(ws, "chat", None, {"channel_id": "c1"}) == f"/workspace/{ws}/chat?channel=c1"
        assert notification_path(
            ws, "chat", None, {"is_dm": True, "conversation_id": "d1"}
        ) == f"/workspace/{ws}/chat?dm=d1"

    def test_unknown_entity_falls_back_to_workspace(self):
        ws = uuid4()

        assert notification_path(ws, None, None) == f"/workspace/{ws}"

    def test_absolute_url(self):
        ws, proj = uuid4(), uuid4()
        notification = Notification(workspace_id=ws, entity_type="project", entity_id=proj, extra={})

        assert notification_url(notification).endswith(f"/workspace/{ws}/projects/{proj}")
        assert notification_url(notification).startswith("http")


class TestNotificationFeed:
    async def test_feed_holds_unread_and_recent_read(self, db_session, workspace, member):
        await add_notifications(db_session, workspace, member, 2, is_read=False)
        await add_notifications(db_session, workspace, member, 17, is_read=True, start_minutes_ago=10)

        feed = await NotificationService(db_session).get_feed(member.id, workspace.id)

        assert feed.unread_count == 2
        assert len(feed.notifications) == 17
        assert feed.has_more is True
        created = [n.created_at for n in feed.notifications]
        assert created == sorted(created, reverse=True)

    async def test_load_older_continues_after_window(self, db_session, workspace, member):
        await add_notifications(db_session, workspace, member, 17, is_read=True)
        service = NotificationService(db_session)
        feed = await service.get_feed(member.id, workspace.id)

        older = await service.load_older(
            member.id, workspace.id, feed.oldest_read_at, exclude_ids=[n.id for n in feed.notifications]
        )

        assert [n.title for n in older] == ["n15", "n16"]
        assert feed.merge_older(older) == 2
        assert feed.merge_older(older) == 0
        assert len(feed.notifications) == 17

    async def test_feed_is_scoped_to_workspace(self, db_session, workspace, member):
        await add_notifications(db_session, workspace, member, 1, is_read=False)

        feed = await NotificationService(db_session).get_feed(member.id, uuid4())

        assert feed.notifications == []
        assert feed.has_more is False

    async def test_mark_as_read(self, db_session, workspace, member):
        row = (await add_notifications(db_session, workspace, member, 1, is_read=False))[0]
        updates = change_feed.subscribe("notifications", f"user_id=eq.{member.id}")
        service = NotificationService(db_session)

        read = await service.mark_as_read(member.id, row.id)

        assert read.is_read is True
        assert read.read_at is not None
        assert (await updates.get(timeout=1)).type == ChangeType.UPDATE
        assert await service.unread_count(member.id, workspace.id) == 0

    async def test_cannot_touch_someone_elses_notification(self, db_session, workspace, member, admin):
        row = (await add_notifications(db_session, workspace, member, 1, is_read=False))[0]
        service = NotificationService(db_session)

        with pytest.raises(ResourceNotFoundException):
            await service.mark_as_read(admin.id, row.id)
        with pytest.raises(ResourceNotFoundException):
            await service.delete(admin.id, row.id)

    async def test_mark_all_as_read(self, db_session, workspace, member):
        await add_notifications(db_session, workspace, member, 3, is_read=False)
        service = NotificationService(db_session)

        assert await service.mark_all_as_read(member.id, workspace.id) == 3
        assert await service.unread_count(member.id, workspace.id) == 0

    async def test_delete(self, db_session, workspace, member):
        row = (await add_notifications(db_session, workspace, member, 1, is_read=True))[0]
        service = NotificationService(db_session)

        await service.delete(member.id, row.id)

        assert (await service.get_feed(member.id, workspace.id)).notifications == []


class TestNotify:
    async def test_creates_and_publishes(self, db_session, workspace, owner, member):
        inserts = change_feed.subscribe("notifications", f"user_id=eq.{member.id}")

        notification = await NotificationService(db_session).notify(
            workspace_id=workspace.id,
            user_id=member.id,
            actor_id=owner.id,
            notification_type=NotificationType.TASK_ASSIGNED,
            title="You were assigned",
            entity_type=EntityType.TASK,
            entity_id=uuid4(),
        )

        assert notification.type == "task_assigned"
        assert notification.pushed is False
        event = await inserts.get(timeout=1)
        assert event.new["id"] == str(notification.id)

    async def test_own_actions_are_silent(self, db_session, workspace, owner):
        notification = await NotificationService(db_session).notify(
            workspace_id=workspace.id,
            user_id=owner.id,
            actor_id=owner.id,
            notification_type=NotificationType.TASK_ASSIGNED,
            title="self",
        )

        assert notification is None

    async def test_disabled_type_is_suppressed(self, db_session, workspace, owner, member):
        await PreferencesService(db_session).update(
            member.id, workspace.id, PreferencesUpdate(task_assigned=False)
        )

        notification = await NotificationService(db_session).notify(
            workspace_id=workspace.id,
            user_id=member.id,
            actor_id=owner.id,
            notification_type=NotificationType.TASK_ASSIGNED,
            title="You were assigned",
        )

        assert notification is None


class TestProjectActivity:
    @pytest_asyncio.fixture
    async def activity(self, db_session, workspace, project, owner, admin, member):
        mine = Task(project_id=project.id, title="Mine", assigned_to=member.id)
        theirs = Task(project_id=project.id, title="Theirs", assigned_to=admin.id)
        db_session.add_all([mine, theirs])
        await db_session.flush()
        for task_id, action in ((None, "project_updated"), (mine.id, "task_created"), (theirs.id, "task_created")):
            db_session.add(ActivityLog(
                workspace_id=workspace.id,
                actor_id=owner.id,
                project_id=project.id,
                task_id=task_id,
                action_type=action,
                entity_type="task" if task_id else "project",
            ))
        await db_session.commit()

    async def test_managers_see_everything(self, db_session, project, admin, activity):
        rows = await NotificationService(db_session).project_activity(project.id, admin.id, WorkspaceRoleEnum.ADMIN)

        assert len(rows) == 3

    async def test_members_see_project_rows_and_own_tasks(self, db_session, project, member, activity):
        rows = await NotificationService(db_session).project_activity(project.id, member.id, "member")

        assert len(rows) == 2
        assert {row.action_type for row in rows} == {"project_updated", "task_created"}


class TestPreferencesService:
    async def test_get_or_create_uses_defaults(self, db_session, workspace, member):
        service = PreferencesService(db_session)

        prefs = await service.get_or_create(member.id, workspace.id)

        assert prefs.task_assigned is True
        assert prefs.push_enabled is False
        assert (prefs.quiet_hours_start, prefs.quiet_hours_end) == (22, 7)
        assert (await service.get_or_create(member.id, workspace.id)).id == prefs.id

    async def test_update_keeps_unsent_fields(self, db_session, workspace, member):
        service = PreferencesService(db_session)

        prefs = await service.update(
            member.id, workspace.id, PreferencesUpdate(chat_mentions=False, quiet_hours_start=21)
        )

        assert prefs.chat_mentions is False
        assert prefs.quiet_hours_start == 21
        assert prefs.quiet_hours_end == 7
        assert prefs.comment_added is True


class TestPushSubscriptions:
    async def test_register_enables_push(self, db_session, workspace, member):
        await PreferencesService(db_session).get_or_create(member.id, workspace.id)
        service = PushSubscriptionService(db_session)

        await service.register(member.id, "ExponentPushToken[abc]")
        again = await service.register(member.id, "ExponentPushToken[abc]")

        prefs = await PreferencesService(db_session).get(member.id, workspace.id)
        await db_session.refresh(prefs)
        assert prefs.push_enabled is True
        assert [s.id for s in await service.list_active(member.id)] == [again.id]

    async def test_last_device_off_disables_push(self, db_session, workspace, member):
        await PreferencesService(db_session).get_or_create(member.id, workspace.id)
        service = PushSubscriptionService(db_session)
        await service.register(member.id, "phone")
        await service.register(member.id, "laptop", platform="web")

        await service.deactivate(member.id, "phone")
        prefs = await PreferencesService(db_session).get(member.id, workspace.id)
        await db_session.refresh(prefs)
        assert prefs.push_enabled is True

        await service.deactivate(member.id, "laptop")
        await db_session.refresh(prefs)
        assert prefs.push_enabled is False

    async def test_unknown_token(self, db_session, member):
        with pytest.raises(ResourceNotFoundException):
            await PushSubscriptionService(db_session).deactivate(member.id, "missing")
