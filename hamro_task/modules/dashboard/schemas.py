"""
Dashboard view models.
"""
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class DashboardStats(BaseModel):
    total_projects: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    total_members: int = 0
    overdue_tasks: int = 0
    in_progress_tasks: int = 0
    active_members: int = 0
    tasks_this_week: int = 0
    tasks_due_today: int = 0
    tasks_due_tomorrow: int = 0
    tasks_due_this_month: int = 0
    completion_rate: int = 0
    total_hours_this_week: float = 0.0


class DashboardTask(BaseModel):
    id: UUID
    title: str
    status: str
    priority: str
    project_id: UUID
    project_name: Optional[str] = None
    project_color: Optional[str] = None
    due_date: Optional[date] = None
    assigned_to: Optional[UUID] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    first_started_at: Optional[datetime] = None
    custom_status_id: Optional[UUID] = None


class StuckTask(BaseModel):
    id: UUID
    title: str
    status: str
    project_name: str
    project_color: str
    days_stuck: int
    assigned_to_name: Optional[str] = None


class ChartPoint(BaseModel):
    day: date
    name: str
    completed: int
    created: int


class ActivityItem(BaseModel):
    id: UUID
    action_type: str
    entity_type: str
    description: Optional[str] = None
    actor_name: str
    actor_avatar: Optional[str] = None
    project_name: Optional[str] = None
    project_color: Optional[str] = None
    created_at: datetime
    task_id: Optional[UUID] = None


class Performer(BaseModel):
    id: UUID
    name: str
    avatar: Optional[str] = None
    completed_tasks: int
    total_tasks: int


class AssigneeStat(BaseModel):
    id: UUID
    name: str
    avatar: Optional[str] = None
    active_tasks: int
    total_tasks: int


class ProjectProgress(BaseModel):
    id: UUID
    name: str
    color: str
    total_tasks: int
    completed_tasks: int


class MemberWorkload(BaseModel):
    id: UUID
    name: str
    avatar: Optional[str] = None
    role: str
    active_tasks: int
    completed_tasks: int
    hours_this_week: float


class SubscriptionInfo(BaseModel):
    plan_name: str
    status: str
    members_used: int
    members_limit: Optional[int] = None
    days_until_expiry: Optional[int] = None
    expires_at: Optional[datetime] = None


class DashboardResponse(BaseModel):
    generated_at: datetime
    stats: DashboardStats
    upcoming_tasks: List[DashboardTask] = []
    my_tasks: List[DashboardTask] = []
    overdue_tasks: List[DashboardTask] = []
    recently_completed: List[DashboardTask] = []
    recently_assigned: List[DashboardTask] = []
    chart_data: List[ChartPoint] = []
    activities: List[ActivityItem] = []
    performers: List[Performer] = []
    assignee_stats: List[AssigneeStat] = []
    project_progress: List[ProjectProgress] = []
    member_workloads: List[MemberWorkload] = []
    subscription_info: Optional[SubscriptionInfo] = None
    stuck_tasks: List[StuckTask] = []
