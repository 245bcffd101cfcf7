"""
Subscription service.

This module provides plan lookups, usage counting and the subscription
state changes driven by payment review and the expiry sweep.
"""
import calendar
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import ResourceNotFoundException
from hamro_task.core.logger import get_logger
from hamro_task.core.models import utcnow
from hamro_task.modules.projects.models import Project
from hamro_task.modules.workspace.models import WorkspaceMember

from .limits import FREE_PLAN_NAME, SubscriptionLimits, evaluate_limits
from .models import SubscriptionPlan, SubscriptionStatus, WorkspaceSubscription

logger = get_logger(__name__)


def add_months(moment: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` later, clamped to the month's last day."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class SubscriptionService:
    """Service class for plans, limits and subscription state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_plans(self) -> List[SubscriptionPlan]:
        result = await self.db.execute(
            select(SubscriptionPlan).order_by(SubscriptionPlan.position)
        )
        return list(result.scalars().all())

    async def get_plan(self, plan_id: UUID) -> SubscriptionPlan:
        plan = await self.db.get(SubscriptionPlan, plan_id)
        if plan is None:
            raise ResourceNotFoundException("SubscriptionPlan", str(plan_id))
        return plan

    async def get_plan_by_name(self, name: str) -> Optional[SubscriptionPlan]:
        result = await self.db.execute(
            select(SubscriptionPlan).where(SubscriptionPlan.name == name)
        )
        return result.scalar_one_or_none()

    async def get_subscription(self, workspace_id: UUID) -> Optional[WorkspaceSubscription]:
        result = await self.db.execute(
            select(WorkspaceSubscription).where(
                WorkspaceSubscription.workspace_id == workspace_id
            )
        )
        return result.scalar_one_or_none()

    async def count_members(self, workspace_id: UUID) -> int:
        count = await self.db.scalar(
            select(func.count(WorkspaceMember.id)).where(
                WorkspaceMember.workspace_id == workspace_id
            )
        )
        return count or 0

    async def count_projects(self, workspace_id: UUID) -> int:
        count = await self.db.scalar(
            select(func.count(Project.id)).where(
                Project.workspace_id == workspace_id,
                Project.is_archived.is_(False),
            )
        )
        return count or 0

    async def get_limits(
        self, workspace_id: UUID, now: Optional[datetime] = None
    ) -> SubscriptionLimits:
        """
        Current plan limits and usage of a workspace.

        Args:
            workspace_id: Workspace to evaluate
            now: Reference time, defaults to the current UTC time

        Returns:
            SubscriptionLimits with can_add_member / can_create_project gates
        """
        subscription = await self.get_subscription(workspace_id)
        plan = None
        if subscription is not None:
            plan = await self.db.get(SubscriptionPlan, subscription.plan_id)
        return evaluate_limits(
            plan,
            subscription,
            member_count=await self.count_members(workspace_id),
            project_count=await self.count_projects(workspace_id),
            now=now or utcnow(),
        )

    async def start_free_plan(self, workspace_id: UUID) -> Optional[WorkspaceSubscription]:
        """
        Put a new workspace on the Free plan.

        Does nothing when no Free plan is configured. The caller commits.
        """
        plan = await self.get_plan_by_name(FREE_PLAN_NAME)
        if plan is None:
            return None
        subscription = WorkspaceSubscription(
            workspace_id=workspace_id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            starts_at=utcnow(),
            member_count=1,
        )
        self.db.add(subscription)
        return subscription

    async def activate(
        self,
        workspace_id: UUID,
        plan_id: UUID,
        months: int,
        now: Optional[datetime] = None,
    ) -> WorkspaceSubscription:
        """
        Activate a paid plan for ``months`` months starting now.

        Creates the subscription row when the workspace has none. The caller
        commits.
        """
        now = now or utcnow()
        subscription = await self.get_subscription(workspace_id)
        if subscription is None:
            subscription = WorkspaceSubscription(workspace_id=workspace_id, plan_id=plan_id)
            self.db.add(subscription)

        subscription.plan_id = plan_id
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.starts_at = now
        subscription.expires_at = add_months(now, months)
        subscription.trial_ends_at = None
        subscription.member_count = await self.count_members(workspace_id)

        logger.info(
            "Subscription activated",
            workspace_id=str(workspace_id),
            plan_id=str(plan_id),
            months=months,
        )
        return subscription

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """
        Mark active, trial and grace subscriptions past their end as expired.

        Returns:
            Number of subscriptions expired
        """
        now = now or utcnow()
        result = await self.db.execute(
            update(WorkspaceSubscription)
            .where(
                WorkspaceSubscription.status.in_([
                    SubscriptionStatus.ACTIVE.value,
                    SubscriptionStatus.TRIAL.value,
                    SubscriptionStatus.GRACE_PERIOD.value,
                ]),
                WorkspaceSubscription.expires_at.is_not(None),
                WorkspaceSubscription.expires_at < now,
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        expired = result.rowcount or 0
        if expired:
            logger.info("Subscriptions expired", count=expired)
        return expired
