"""Plan limit evaluation over already-loaded plan and usage numbers."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from hamro_task.core.models import as_utc, enum_value

from .models import SubscriptionPlan, SubscriptionStatus, WorkspaceSubscription

FREE_PLAN_NAME = "Free"
LIMIT_REACHED = "LIMIT_REACHED"


@dataclass(frozen=True)
class SubscriptionLimits:
    plan_name: str
    status: Optional[str]
    max_members: Optional[int]
    max_projects: Optional[int]
    member_count: int
    project_count: int
    expires_at: Optional[datetime]
    days_until_expiry: Optional[int]
    is_expired: bool
    is_trialing: bool
    features: Dict[str, Any] = field(default_factory=dict)

    @property
    def can_add_member(self) -> bool:
        return self.max_members is None or self.member_count < self.max_members

    @property
    def can_create_project(self) -> bool:
        return self.max_projects is None or self.project_count < self.max_projects

    def has_feature(self, key: str) -> bool:
        return bool(self.features.get(key))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_name": self.plan_name,
            "status": self.status,
            "max_members": self.max_members,
            "max_projects": self.max_projects,
            "member_count": self.member_count,
            "project_count": self.project_count,
            "expires_at": self.expires_at,
            "days_until_expiry": self.days_until_expiry,
            "is_expired": self.is_expired,
            "is_trialing": self.is_trialing,
            "can_add_member": self.can_add_member,
            "can_create_project": self.can_create_project,
            "features": self.features,
        }


def days_until(expires_at: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days left, rounded up; negative once expired."""
    if expires_at is None:
        return None
    seconds = (as_utc(expires_at) - as_utc(now)).total_seconds()
    return math.ceil(seconds / 86400)


def evaluate_limits(
    plan: Optional[SubscriptionPlan],
    subscription: Optional[WorkspaceSubscription],
    *,
    member_count: int,
    project_count: int,
    now: datetime,
) -> SubscriptionLimits:
    """
    Combine a plan, the workspace subscription and current usage.

    A workspace without a subscription row is treated as unlimited on an
    unnamed Free plan.
    """
    status = enum_value(subscription.status) if subscription is not None else None
    expires_at = subscription.expires_at if subscription is not None else None
    if subscription is not None and subscription.status == SubscriptionStatus.TRIAL:
        expires_at = subscription.trial_ends_at or expires_at
    remaining = days_until(expires_at, now)

    return SubscriptionLimits(
        plan_name=plan.name if plan is not None else FREE_PLAN_NAME,
        status=status,
        max_members=plan.max_members if plan is not None else None,
        max_projects=plan.max_projects if plan is not None else None,
        member_count=member_count,
        project_count=project_count,
        expires_at=as_utc(expires_at),
        days_until_expiry=remaining,
        is_expired=status == SubscriptionStatus.EXPIRED.value or (remaining is not None and remaining < 0),
        is_trialing=status == SubscriptionStatus.TRIAL.value,
        features=dict(plan.features or {}) if plan is not None else {},
    )
