"""
Immutable rows the dashboard is computed from.

The service reads the database once per run and freezes what it read into a
``DashboardSnapshot``; aggregation never touches the session.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Tuple
from uuid import UUID


@dataclass(frozen=True)
class ProjectRow:
    id: UUID
    name: str
    color: Optional[str] = None


@dataclass(frozen=True)
class StatusRow:
    id: UUID
    project_id: UUID
    name: str
    is_completed: bool = False
    is_default: bool = False


@dataclass(frozen=True)
class MemberRow:
    user_id: UUID
    role: str
    email: str = ""
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    last_active_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.full_name or (self.email.split("@")[0] if self.email else "User")


@dataclass(frozen=True)
class TaskRow:
    id: UUID
    project_id: UUID
    title: str
    status: str
    created_at: datetime
    updated_at: datetime
    priority: str = "medium"
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    first_started_at: Optional[datetime] = None
    assigned_to: Optional[UUID] = None
    created_by: Optional[UUID] = None
    custom_status_id: Optional[UUID] = None


@dataclass(frozen=True)
class WorkSessionRow:
    task_id: UUID
    user_id: UUID
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None


@dataclass(frozen=True)
class ActivityRow:
    id: UUID
    action_type: str
    entity_type: str
    created_at: datetime
    description: Optional[str] = None
    actor_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    task_id: Optional[UUID] = None


@dataclass(frozen=True)
class SubscriptionRow:
    plan_name: str
    status: str
    max_members: Optional[int] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything one dashboard run reads, in fetch order."""

    projects: Tuple[ProjectRow, ...] = ()
    statuses: Tuple[StatusRow, ...] = ()
    members: Tuple[MemberRow, ...] = ()
    tasks: Tuple[TaskRow, ...] = ()
    sessions: Tuple[WorkSessionRow, ...] = ()
    activities: Tuple[ActivityRow, ...] = ()
    subscription: Optional[SubscriptionRow] = field(default=None)
