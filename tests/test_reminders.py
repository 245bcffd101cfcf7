"""
Tests for the due-date reminder and push delivery jobs.
"""
from datetime import UTC, date, datetime, timedelta

import pytest_asyncio
from sqlalchemy import select

from hamro_task.integrations.functions import FunctionResult
from hamro_task.modules.notifications.models import Notification, NotificationType
from hamro_task.modules.notifications.preferences import PreferencesService
from hamro_task.modules.notifications.push import PushSubscriptionService
from hamro_task.modules.notifications.schemas import PreferencesUpdate
from hamro_task.modules.projects.models import Project, Task, TaskStatus
from hamro_task.tasks.reminders import create_due_date_reminders, deliver_pending_pushes

TODAY = date(2026, 3, 11)
TOMORROW = TODAY + timedelta(days=1)
# 10:00 and 22:45 in Kathmandu
MORNING = datetime(2026, 3, 11, 4, 15, tzinfo=UTC)
LATE_EVENING = datetime(2026, 3, 11, 17, 0, tzinfo=UTC)


async def reminders_for(db, user):
    result = await db.execute(
        select(Notification).where(
            Notification.user_id == user.id,
            Notification.type == NotificationType.DUE_DATE_REMINDER.value,
        )
    )
    return list(result.scalars().all())


class TestDueDateReminders:
    @pytest_asyncio.fixture
    async def tasks(self, db_session, workspace, project, owner, member):
        archived = Project(workspace_id=workspace.id, name="Old site", created_by=owner.id, is_archived=True)
        db_session.add(archived)
        await db_session.flush()
        rows = {
            "due": Task(project_id=project.id, title="Ship landing page", assigned_to=member.id, due_date=TOMORROW),
            "unassigned": Task(project_id=project.id, title="Nobody's", due_date=TOMORROW),
            "finished": Task(
                project_id=project.id, title="Finished", assigned_to=member.id, due_date=TOMORROW,
                status=TaskStatus.DONE.value, completed_at=MORNING,
            ),
            "later": Task(project_id=project.id, title="Later", assigned_to=member.id, due_date=TOMORROW + timedelta(days=1)),
            "archived": Task(project_id=archived.id, title="Archived", assigned_to=member.id, due_date=TOMORROW),
        }
        db_session.add_all(rows.values())
        await db_session.commit()
        return rows

    async def test_reminds_assignee_of_open_task(self, db_session, member, project, tasks):
        created = await create_due_date_reminders(db_session, today=TODAY)

        assert created == 1
        reminder = (await reminders_for(db_session, member))[0]
        assert reminder.entity_id == tasks["due"].id
        assert reminder.title == "Ship landing page is due tomorrow"
        assert reminder.extra == {"project_id": str(project.id), "due_date": "2026-03-12"}

    async def test_second_run_does_not_repeat(self, db_session, member, tasks):
        await create_due_date_reminders(db_session, today=TODAY)

        assert await create_due_date_reminders(db_session, today=TODAY) == 0
        assert len(await reminders_for(db_session, member)) == 1

    async def test_respects_preferences(self, db_session, workspace, member, tasks):
        await PreferencesService(db_session).update(
            member.id, workspace.id, PreferencesUpdate(due_date_reminders=False)
        )

        assert await create_due_date_reminders(db_session, today=TODAY) == 0


class TestPushDelivery:
    @pytest_asyncio.fixture
    async def pending(self, db_session, workspace, admin, member):
        await PreferencesService(db_session).get_or_create(member.id, workspace.id)
        await PushSubscriptionService(db_session).register(member.id, "ExponentPushToken[ram]")
        rows = {
            "member": Notification(
                workspace_id=workspace.id, user_id=member.id, type=NotificationType.TASK_ASSIGNED.value,
                title="You were assigned", body="Ship landing page", extra={},
            ),
            "admin": Notification(
                workspace_id=workspace.id, user_id=admin.id, type=NotificationType.TASK_COMPLETED.value,
                title="Task completed", extra={},
            ),
        }
        db_session.add_all(rows.values())
        await db_session.commit()
        return rows

    async def test_sends_to_registered_devices(self, db_session, workspace, member, pending, mock_functions):
        sent = await deliver_pending_pushes(db_session, mock_functions, now=MORNING)

        assert sent == 1
        notification = pending["member"]
        mock_functions.send_push_notification.assert_awaited_once()
        args, kwargs = mock_functions.send_push_notification.call_args
        assert args[:4] == (member.id, notification.id, "You were assigned", "Ship landing page")
        assert args[4].endswith(f"/workspace/{workspace.id}")
        assert kwargs == {"tag": "task_assigned"}
        assert notification.pushed is True

    async def test_users_without_push_are_marked_done(self, db_session, pending, mock_functions):
        await deliver_pending_pushes(db_session, mock_functions, now=MORNING)

        assert pending["admin"].pushed is True
        assert mock_functions.send_push_notification.await_count == 1

    async def test_quiet_hours_postpone_delivery(self, db_session, pending, mock_functions):
        sent = await deliver_pending_pushes(db_session, mock_functions, now=LATE_EVENING)

        assert sent == 0
        mock_functions.send_push_notification.assert_not_awaited()
        assert pending["member"].pushed is False
        assert pending["admin"].pushed is True

    async def test_failed_send_is_retried_later(self, db_session, pending, mock_functions):
        mock_functions.send_push_notification.return_value = FunctionResult(success=False, error="expo down")

        assert await deliver_pending_pushes(db_session, mock_functions, now=MORNING) == 0
        assert pending["member"].pushed is False

        mock_functions.send_push_notification.return_value = FunctionResult(success=True)
        assert await deliver_pending_pushes(db_session, mock_functions, now=MORNING) == 1
        assert pending["member"].pushed is True
