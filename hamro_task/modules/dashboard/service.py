"""
Dashboard service.

Reads one workspace in a fixed sequence of queries, freezes the rows into a
``DashboardSnapshot`` and hands them to the pure aggregator.
"""
import time
from datetime import datetime, time as dt_time, timezone
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.config import settings
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import record_dashboard_build
from hamro_task.core.models import enum_value
from hamro_task.modules.auth.models import User
from hamro_task.modules.projects.models import (
    ActivityLog,
    Project,
    ProjectStatus,
    Task,
    TaskWorkSession,
)
from hamro_task.modules.subscription.models import SubscriptionPlan
from hamro_task.modules.subscription.service import SubscriptionService
from hamro_task.modules.workspace.models import WorkspaceMember, WorkspaceRoleEnum

from .aggregator import ACTIVITY_LIMIT, aggregate_dashboard, week_bounds
from .schemas import DashboardResponse
from .snapshot import (
    ActivityRow,
    DashboardSnapshot,
    MemberRow,
    ProjectRow,
    StatusRow,
    SubscriptionRow,
    TaskRow,
    WorkSessionRow,
)

logger = get_logger(__name__)


def dashboard_now() -> datetime:
    """Current time in the dashboard timezone."""
    return datetime.now(ZoneInfo(settings.dashboard_timezone))


class DashboardService:
    """Service class for building the workspace dashboard."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def build(
        self,
        workspace_id: UUID,
        user_id: UUID,
        role: WorkspaceRoleEnum,
        now: Optional[datetime] = None,
    ) -> DashboardResponse:
        """
        Build the dashboard of a workspace for one viewer.

        Any failure while reading aborts the run; nothing partial is returned.
        """
        now = now or dashboard_now()
        started = time.perf_counter()
        try:
            snapshot = await self.load_snapshot(workspace_id, WorkspaceRoleEnum(role), now)
            dashboard = aggregate_dashboard(
                snapshot,
                user_id=user_id,
                role=role,
                now=now,
                stuck_after_days=settings.stuck_task_days,
            )
        except Exception as e:
            record_dashboard_build(time.perf_counter() - started, success=False)
            logger.error("Dashboard build failed", workspace_id=str(workspace_id), error=str(e))
            raise

        record_dashboard_build(time.perf_counter() - started, success=True)
        logger.debug(
            "Dashboard built",
            workspace_id=str(workspace_id),
            tasks=len(snapshot.tasks),
            projects=len(snapshot.projects),
        )
        return dashboard

    async def load_snapshot(
        self, workspace_id: UUID, role: WorkspaceRoleEnum, now: datetime
    ) -> DashboardSnapshot:
        projects = await self._projects(workspace_id)
        project_ids = [p.id for p in projects]

        statuses = await self._statuses(project_ids)
        members = await self._members(workspace_id)
        tasks = await self._tasks(project_ids)
        task_ids = [t.id for t in tasks]
        sessions = await self._sessions(task_ids, now)
        activities = await self._activities(workspace_id)

        subscription = None
        if role == WorkspaceRoleEnum.OWNER:
            subscription = await self._subscription(workspace_id)

        return DashboardSnapshot(
            projects=tuple(projects),
            statuses=tuple(statuses),
            members=tuple(members),
            tasks=tuple(tasks),
            sessions=tuple(sessions),
            activities=tuple(activities),
            subscription=subscription,
        )

    async def _projects(self, workspace_id: UUID):
        result = await self.db.execute(
            select(Project)
            .where(Project.workspace_id == workspace_id, Project.is_archived.is_(False))
            .order_by(Project.created_at.desc())
        )
        return [ProjectRow(id=p.id, name=p.name, color=p.color) for p in result.scalars().all()]

    async def _statuses(self, project_ids):
        if not project_ids:
            return []
        result = await self.db.execute(
            select(ProjectStatus)
            .where(ProjectStatus.project_id.in_(project_ids))
            .order_by(ProjectStatus.position)
        )
        return [
            StatusRow(
                id=s.id,
                project_id=s.project_id,
                name=s.name,
                is_completed=s.is_completed,
                is_default=s.is_default,
            )
            for s in result.scalars().all()
        ]

    async def _members(self, workspace_id: UUID):
        result = await self.db.execute(
            select(WorkspaceMember, User)
            .join(User, User.id == WorkspaceMember.user_id)
            .where(WorkspaceMember.workspace_id == workspace_id)
        )
        return [
            MemberRow(
                user_id=member.user_id,
                role=enum_value(member.role),
                email=user.email,
                full_name=user.full_name,
                avatar_url=user.avatar_url,
                last_active_at=member.last_active_at,
            )
            for member, user in result.all()
        ]

    async def _tasks(self, project_ids):
        if not project_ids:
            return []
        result = await self.db.execute(select(Task).where(Task.project_id.in_(project_ids)))
        return [
            TaskRow(
                id=t.id,
                project_id=t.project_id,
                title=t.title,
                status=enum_value(t.status),
                priority=enum_value(t.priority),
                created_at=t.created_at,
                updated_at=t.updated_at,
                due_date=t.due_date,
                completed_at=t.completed_at,
                first_started_at=t.first_started_at,
                assigned_to=t.assigned_to,
                created_by=t.created_by,
                custom_status_id=t.custom_status_id,
            )
            for t in result.scalars().all()
        ]

    async def _sessions(self, task_ids, now: datetime):
        if not task_ids:
            return []
        monday, _ = week_bounds(now.date())
        week_start = datetime.combine(monday, dt_time.min, tzinfo=now.tzinfo).astimezone(timezone.utc)
        result = await self.db.execute(
            select(TaskWorkSession).where(
                TaskWorkSession.task_id.in_(task_ids),
                TaskWorkSession.started_at >= week_start,
            )
        )
        return [
            WorkSessionRow(
                task_id=s.task_id,
                user_id=s.user_id,
                started_at=s.started_at,
                ended_at=s.ended_at,
                duration_seconds=s.duration_seconds,
            )
            for s in result.scalars().all()
        ]

    async def _activities(self, workspace_id: UUID):
        result = await self.db.execute(
            select(ActivityLog)
            .where(ActivityLog.workspace_id == workspace_id)
            .order_by(ActivityLog.created_at.desc())
            .limit(ACTIVITY_LIMIT)
        )
        return [
            ActivityRow(
                id=a.id,
                action_type=a.action_type,
                entity_type=a.entity_type,
                created_at=a.created_at,
                description=a.description,
                actor_id=a.actor_id,
                project_id=a.project_id,
                task_id=a.task_id,
            )
            for a in result.scalars().all()
        ]

    async def _subscription(self, workspace_id: UUID) -> Optional[SubscriptionRow]:
        """The workspace's plan summary; lookup errors leave it empty."""
        try:
            subscription = await SubscriptionService(self.db).get_subscription(workspace_id)
            if subscription is None:
                return None
            plan = await self.db.get(SubscriptionPlan, subscription.plan_id)
        except Exception as e:
            logger.warning("Subscription lookup failed", workspace_id=str(workspace_id), error=str(e))
            return None
        return SubscriptionRow(
            plan_name=plan.name if plan is not None else "Free",
            status=enum_value(subscription.status),
            max_members=plan.max_members if plan is not None else None,
            expires_at=subscription.expires_at,
        )
