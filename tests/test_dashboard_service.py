"""
Tests for loading the dashboard from the database.
"""
from datetime import timedelta

import pytest_asyncio
from sqlalchemy import select

from hamro_task.modules.dashboard.service import DashboardService, dashboard_now
from hamro_task.modules.projects.models import Project, ProjectStatus, Task
from hamro_task.modules.subscription.models import SubscriptionPlan
from hamro_task.modules.subscription.service import SubscriptionService
from hamro_task.modules.workspace.models import WorkspaceRoleEnum


@pytest_asyncio.fixture
async def board(db_session, workspace, project, owner, member):
    now = dashboard_now()
    today = now.date()
    columns = {
        s.name: s for s in (await db_session.execute(
            select(ProjectStatus).where(ProjectStatus.project_id == project.id)
        )).scalars()
    }
    archived = Project(workspace_id=workspace.id, name="Old site", created_by=owner.id, is_archived=True)
    db_session.add(archived)
    await db_session.flush()
    db_session.add_all([
        Task(project_id=project.id, title="Due today", assigned_to=owner.id, due_date=today,
             custom_status_id=columns["Todo"].id, created_by=owner.id),
        Task(project_id=project.id, title="Late", assigned_to=owner.id, due_date=today - timedelta(days=2),
             custom_status_id=columns["In Progress"].id, first_started_at=now, created_by=owner.id),
        Task(project_id=project.id, title="Shipped", assigned_to=member.id, status="done",
             custom_status_id=columns["Done"].id, completed_at=now, created_by=owner.id),
        Task(project_id=archived.id, title="Forgotten", assigned_to=owner.id),
    ])
    await db_session.commit()
    return now


class TestDashboardService:
    async def test_owner_dashboard(self, db_session, workspace, owner, board):
        dashboard = await DashboardService(db_session).build(
            workspace.id, owner.id, WorkspaceRoleEnum.OWNER, now=board
        )

        stats = dashboard.stats
        assert stats.total_projects == 1
        assert stats.total_tasks == 3
        assert stats.completed_tasks == 1
        assert stats.total_members == 4
        assert stats.overdue_tasks == 1
        assert stats.tasks_due_today == 1
        assert stats.in_progress_tasks == 1
        assert [t.title for t in dashboard.overdue_tasks] == ["Late"]
        assert {t.title for t in dashboard.my_tasks} == {"Due today", "Late"}
        assert [t.title for t in dashboard.recently_completed] == ["Shipped"]
        assert len(dashboard.member_workloads) == 4
        assert dashboard.project_progress[0].completed_tasks == 1

    async def test_subscription_only_for_owner(self, db_session, workspace, owner, member, board):
        plan = SubscriptionPlan(name="Basic", price_npr=199, max_members=10, position=1)
        db_session.add(plan)
        await db_session.commit()
        await SubscriptionService(db_session).activate(workspace.id, plan.id, months=1)
        await db_session.commit()
        service = DashboardService(db_session)

        for_owner = await service.build(workspace.id, owner.id, WorkspaceRoleEnum.OWNER, now=board)
        for_member = await service.build(workspace.id, member.id, WorkspaceRoleEnum.MEMBER, now=board)

        assert for_owner.subscription_info.plan_name == "Basic"
        assert for_owner.subscription_info.members_used == 4
        assert for_member.subscription_info is None
        assert for_member.member_workloads == []
        assert [t.title for t in for_member.my_tasks] == []

    async def test_empty_workspace(self, db_session, workspace, owner):
        dashboard = await DashboardService(db_session).build(workspace.id, owner.id, WorkspaceRoleEnum.OWNER)

        assert dashboard.stats.total_tasks == 0
        assert dashboard.stats.total_members == 4
        assert dashboard.subscription_info is None
