"""
Tests for projects, board statuses and tasks.
"""
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from hamro_task.core.exceptions import (
    BusinessRuleException,
    ConfirmationRequiredException,
    ResourceNotFoundException,
)
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.modules.notifications.models import Notification, NotificationType
from hamro_task.modules.projects.activity import ActivityAction
from hamro_task.modules.projects.models import (
    ActivityLog,
    ProjectStatus,
    StatusCategory,
    Task,
    TaskStatus,
    TaskWorkSession,
)
from hamro_task.modules.projects.schemas import (
    ProjectCreate,
    ReorderRequest,
    StatusCreate,
    StatusUpdate,
    TaskCreate,
    TaskUpdate,
)
from hamro_task.modules.projects.service import ProjectService
from hamro_task.modules.projects.statuses import StatusService, category_is_completed, task_status_for
from hamro_task.modules.projects.tasks import TaskService, apply_status
from hamro_task.modules.subscription.limits import LIMIT_REACHED
from hamro_task.modules.subscription.models import (
    SubscriptionPlan,
    SubscriptionStatus,
    WorkspaceSubscription,
)

NOW = datetime(2026, 3, 11, 4, 15, tzinfo=UTC)


@pytest_asyncio.fixture
async def columns(db_session, project):
    """The project's statuses by name."""
    statuses = await StatusService(db_session).list_statuses(project.id)
    return {s.name: s for s in statuses}


async def notifications_for(db, user):
    result = await db.execute(select(Notification).where(Notification.user_id == user.id))
    return list(result.scalars().all())


class TestStatusRules:
    @pytest.mark.parametrize("category, completed", [
        (StatusCategory.TODO, False),
        (StatusCategory.ACTIVE, False),
        (StatusCategory.DONE, True),
        (StatusCategory.CANCELLED, True),
    ])
    def test_completed_follows_category(self, category, completed):
        assert category_is_completed(category) is completed
        assert category_is_completed(category.value) is completed

    def test_task_status_for_category(self):
        assert task_status_for("todo") == TaskStatus.TODO
        assert task_status_for(StatusCategory.ACTIVE) == TaskStatus.IN_PROGRESS
        assert task_status_for("cancelled") == TaskStatus.DONE


class TestApplyStatus:
    def column(self, category, is_default=False):
        return ProjectStatus(
            id=uuid4(),
            name=category.value,
            category=category.value,
            is_default=is_default,
            is_completed=category_is_completed(category),
        )

    def test_entering_active_status_stamps_first_start_once(self):
        task = Task(title="t")
        active = self.column(StatusCategory.ACTIVE)

        apply_status(task, active, NOW)
        apply_status(task, self.column(StatusCategory.TODO, is_default=True), NOW + timedelta(hours=1))
        apply_status(task, active, NOW + timedelta(hours=2))

        assert task.first_started_at == NOW
        assert task.status == TaskStatus.IN_PROGRESS.value

    def test_default_status_does_not_start_task(self):
        task = Task(title="t", first_started_at=None)

        apply_status(task, self.column(StatusCategory.TODO, is_default=True), NOW)

        assert task.first_started_at is None
        assert task.completed_at is None

    def test_completion_is_stamped_and_cleared(self):
        task = Task(title="t", completed_at=None)
        done = self.column(StatusCategory.DONE)

        apply_status(task, done, NOW)
        apply_status(task, done, NOW + timedelta(hours=1))
        assert task.completed_at == NOW
        assert task.status == TaskStatus.DONE.value

        apply_status(task, self.column(StatusCategory.TODO, is_default=True), NOW + timedelta(hours=2))
        assert task.completed_at is None


class TestProjectService:
    async def test_create_seeds_default_statuses(self, db_session, workspace, owner):
        subscription = change_feed.subscribe("projects", f"workspace_id=eq.{workspace.id}")

        result = await ProjectService(db_session).create_project(
            workspace.id, ProjectCreate(name="  Mobile app ", color="#abc"), owner.id
        )

        assert result.success is True
        project = result.data["project"]
        assert project["name"] == "Mobile app"
        assert project["color"] == "#ABC"
        statuses = await StatusService(db_session).list_statuses(UUID(project["id"]))
        assert [(s.name, s.is_default, s.is_completed) for s in statuses] == [
            ("Todo", True, False),
            ("In Progress", False, False),
            ("Done", False, True),
        ]
        event = await subscription.get(timeout=1)
        assert event.type == ChangeType.INSERT

    async def test_create_logs_activity(self, db_session, workspace, owner):
        await ProjectService(db_session).create_project(workspace.id, ProjectCreate(name="Ops"), owner.id)

        result = await db_session.execute(select(ActivityLog).where(ActivityLog.workspace_id == workspace.id))
        entries = list(result.scalars().all())
        assert [e.action_type for e in entries] == [ActivityAction.CREATED]
        assert entries[0].description == "created project Ops"

    async def test_create_refused_at_plan_limit(self, db_session, workspace, owner, project):
        plan = SubscriptionPlan(name="Free", price_npr=0, max_members=3, max_projects=1)
        db_session.add(plan)
        await db_session.flush()
        db_session.add(WorkspaceSubscription(
            workspace_id=workspace.id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE.value,
            starts_at=NOW,
        ))
        await db_session.commit()

        result = await ProjectService(db_session).create_project(
            workspace.id, ProjectCreate(name="Second"), owner.id
        )

        assert result.success is False
        assert result.code == LIMIT_REACHED
        assert "Free" in result.error
        assert len(await ProjectService(db_session).list_projects(workspace.id)) == 1

    async def test_project_of_other_workspace_is_not_found(self, db_session, project):
        with pytest.raises(ResourceNotFoundException):
            await ProjectService(db_session).get_project(uuid4(), project.id)

    async def test_archive_hides_project(self, db_session, workspace, owner, project):
        service = ProjectService(db_session)

        await service.archive_project(workspace.id, project.id, owner.id)

        assert await service.list_projects(workspace.id) == []
        assert len(await service.list_projects(workspace.id, include_archived=True)) == 1

        await service.archive_project(workspace.id, project.id, owner.id, archived=False)
        assert len(await service.list_projects(workspace.id)) == 1

    async def test_delete_requires_confirmation(self, db_session, workspace, project):
        with pytest.raises(ConfirmationRequiredException):
            await ProjectService(db_session).delete_project(workspace.id, project.id)

    async def test_delete_removes_tasks(self, db_session, workspace, owner, project):
        await TaskService(db_session).create_task(workspace.id, project.id, TaskCreate(title="Logo"), owner.id)

        await ProjectService(db_session).delete_project(workspace.id, project.id, confirm=True)

        assert await ProjectService(db_session).list_projects(workspace.id, include_archived=True) == []
        assert await db_session.scalar(select(func.count(Task.id))) == 0
        assert await db_session.scalar(select(func.count(ProjectStatus.id))) == 0


class TestStatusService:
    async def test_create_appends_at_end(self, db_session, project):
        status = await StatusService(db_session).create_status(project.id, StatusCreate(name="Review"))

        assert status.position == 3
        assert status.category == StatusCategory.TODO.value
        assert status.is_completed is False

    async def test_completed_flag_implies_done_category(self, db_session, project):
        status = await StatusService(db_session).create_status(
            project.id, StatusCreate(name="Shipped", is_completed=True, is_default=True)
        )

        assert status.category == StatusCategory.DONE.value
        assert status.is_completed is True
        assert status.is_default is False

    async def test_new_default_clears_old_default(self, db_session, project, columns):
        service = StatusService(db_session)

        new_default = await service.create_status(project.id, StatusCreate(name="Inbox", is_default=True))

        assert (await service.get_default_status(project.id)).id == new_default.id
        await db_session.refresh(columns["Todo"])
        assert columns["Todo"].is_default is False

    async def test_completed_status_cannot_be_default(self, db_session, project, columns):
        with pytest.raises(BusinessRuleException):
            await StatusService(db_session).update_status(
                project.id, columns["Done"].id, StatusUpdate(is_default=True)
            )

    async def test_category_change_syncs_tasks(self, db_session, workspace, owner, project, columns):
        task = await TaskService(db_session).create_task(
            workspace.id, project.id, TaskCreate(title="Copy", custom_status_id=columns["In Progress"].id), owner.id
        )

        await StatusService(db_session).update_status(
            project.id, columns["In Progress"].id, StatusUpdate(category=StatusCategory.CANCELLED)
        )
        await db_session.refresh(task)

        assert task.completed_at is not None
        assert task.status == TaskStatus.DONE.value
        assert columns["In Progress"].is_completed is True

    async def test_delete_moves_tasks_to_default(self, db_session, workspace, owner, project, columns):
        task = await TaskService(db_session).create_task(
            workspace.id, project.id, TaskCreate(title="Copy", custom_status_id=columns["Done"].id), owner.id
        )

        target = await StatusService(db_session).delete_status(project.id, columns["Done"].id)
        await db_session.refresh(task)

        assert target.id == columns["Todo"].id
        assert task.custom_status_id == columns["Todo"].id
        assert task.completed_at is None

    async def test_deleting_default_promotes_first_remaining(self, db_session, project, columns):
        target = await StatusService(db_session).delete_status(project.id, columns["Todo"].id)

        assert target.id == columns["In Progress"].id
        assert target.is_default is True

    async def test_last_status_cannot_be_deleted(self, db_session, project, columns):
        service = StatusService(db_session)
        await service.delete_status(project.id, columns["Done"].id)
        await service.delete_status(project.id, columns["In Progress"].id)

        with pytest.raises(BusinessRuleException):
            await service.delete_status(project.id, columns["Todo"].id)

    async def test_reorder(self, db_session, project, columns):
        order = [columns["Done"].id, columns["Todo"].id, columns["In Progress"].id]

        statuses = await StatusService(db_session).reorder_statuses(project.id, ReorderRequest(ids=order))

        assert [s.id for s in statuses] == order

    async def test_reorder_rejects_unknown_ids(self, db_session, project):
        with pytest.raises(ResourceNotFoundException):
            await StatusService(db_session).reorder_statuses(project.id, ReorderRequest(ids=[uuid4()]))


class TestTaskService:
    async def test_create_starts_in_default_status(self, db_session, workspace, owner, project, columns):
        subscription = change_feed.subscribe("tasks", f"project_id=eq.{project.id}")
        service = TaskService(db_session)

        first = await service.create_task(workspace.id, project.id, TaskCreate(title="One"), owner.id)
        second = await service.create_task(workspace.id, project.id, TaskCreate(title="Two"), owner.id)

        assert first.custom_status_id == columns["Todo"].id
        assert first.status == TaskStatus.TODO.value
        assert first.first_started_at is None
        assert (first.position, second.position) == (0, 1)
        assert (await subscription.get(timeout=1)).new["title"] == "One"

    async def test_assignee_must_be_member(self, db_session, workspace, owner, project):
        with pytest.raises(BusinessRuleException):
            await TaskService(db_session).create_task(
                workspace.id, project.id, TaskCreate(title="x", assigned_to=uuid4()), owner.id
            )

    async def test_assignment_notifies_assignee(self, db_session, workspace, owner, member, project):
        await TaskService(db_session).create_task(
            workspace.id, project.id, TaskCreate(title="Logo", assigned_to=member.id), owner.id
        )

        notifications = await notifications_for(db_session, member)
        assert [n.type for n in notifications] == [NotificationType.TASK_ASSIGNED.value]
        assert notifications[0].extra == {"project_id": str(project.id)}

    async def test_reassignment_logs_and_notifies(self, db_session, workspace, owner, admin, member, project):
        service = TaskService(db_session)
        task = await service.create_task(workspace.id, project.id, TaskCreate(title="Logo"), owner.id)

        await service.update_task(workspace.id, task.id, TaskUpdate(assigned_to=admin.id), owner.id)

        assert task.assigned_to == admin.id
        assert len(await notifications_for(db_session, admin)) == 1
        actions = await db_session.scalars(select(ActivityLog.action_type).where(ActivityLog.task_id == task.id))
        assert ActivityAction.ASSIGNED in list(actions)

    async def test_move_through_board(self, db_session, workspace, owner, admin, member, project, columns):
        service = TaskService(db_session)
        task = await service.create_task(
            workspace.id, project.id, TaskCreate(title="Logo", assigned_to=member.id), owner.id
        )

        await service.move_to_status(workspace.id, task.id, columns["In Progress"].id, member.id)
        started = task.first_started_at
        assert started is not None
        assert task.status == TaskStatus.IN_PROGRESS.value

        await service.move_to_status(workspace.id, task.id, columns["Done"].id, admin.id)
        assert task.completed_at is not None
        assert task.status == TaskStatus.DONE.value

        await service.move_to_status(workspace.id, task.id, columns["Todo"].id, admin.id)
        assert task.completed_at is None
        assert task.first_started_at == started

        creator_types = [n.type for n in await notifications_for(db_session, owner)]
        assert creator_types == [NotificationType.TASK_COMPLETED.value]

    async def test_completion_closes_running_timers(self, db_session, workspace, member, project, columns):
        service = TaskService(db_session)
        task = await service.create_task(workspace.id, project.id, TaskCreate(title="Logo"), member.id)
        session = await service.start_timer(workspace.id, task.id, member.id)

        await service.move_to_status(workspace.id, task.id, columns["Done"].id, member.id)

        assert session.ended_at is not None
        assert session.duration_seconds >= 0

    async def test_timer_start_is_idempotent(self, db_session, workspace, member, project):
        service = TaskService(db_session)
        task = await service.create_task(workspace.id, project.id, TaskCreate(title="Logo"), member.id)

        first = await service.start_timer(workspace.id, task.id, member.id)
        second = await service.start_timer(workspace.id, task.id, member.id)

        assert first.id == second.id
        assert task.first_started_at is not None

    async def test_stop_timer(self, db_session, workspace, member, project):
        service = TaskService(db_session)
        task = await service.create_task(workspace.id, project.id, TaskCreate(title="Logo"), member.id)
        db_session.add(TaskWorkSession(
            task_id=task.id, user_id=member.id, started_at=datetime.now(UTC) - timedelta(minutes=30)
        ))
        await db_session.commit()

        stopped = await service.stop_timer(workspace.id, task.id, member.id)

        assert 1790 <= stopped.duration_seconds <= 1900
        assert await service.stop_timer(workspace.id, task.id, member.id) is None

    async def test_task_of_other_workspace_is_not_found(self, db_session, workspace, owner, project):
        task = await TaskService(db_session).create_task(workspace.id, project.id, TaskCreate(title="x"), owner.id)

        with pytest.raises(ResourceNotFoundException):
            await TaskService(db_session).get_task(uuid4(), task.id)

    async def test_reorder_and_delete(self, db_session, workspace, owner, project):
        service = TaskService(db_session)
        first = await service.create_task(workspace.id, project.id, TaskCreate(title="One"), owner.id)
        second = await service.create_task(workspace.id, project.id, TaskCreate(title="Two"), owner.id)

        reordered = await service.reorder_tasks(workspace.id, project.id, ReorderRequest(ids=[second.id, first.id]))
        assert [t.title for t in reordered] == ["Two", "One"]

        await service.delete_task(workspace.id, second.id)
        assert [t.title for t in await service.list_tasks(workspace.id, project.id)] == ["One"]
