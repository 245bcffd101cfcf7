"""
Pure dashboard aggregation.

``aggregate_dashboard`` turns a frozen ``DashboardSnapshot`` into the
dashboard view. It performs no I/O and reads no clock: ``now`` is supplied
by the caller, timezone-aware in the dashboard timezone, and every
timestamp is converted into that zone before a calendar date is taken
from it.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple
from uuid import UUID

from hamro_task.core.models import as_utc, enum_value
from hamro_task.modules.projects.models import TaskStatus
from hamro_task.modules.subscription.limits import days_until
from hamro_task.modules.workspace.models import WorkspaceRoleEnum

from .schemas import (
    ActivityItem,
    AssigneeStat,
    ChartPoint,
    DashboardResponse,
    DashboardStats,
    DashboardTask,
    MemberWorkload,
    Performer,
    ProjectProgress,
    StuckTask,
    SubscriptionInfo,
)
from .snapshot import DashboardSnapshot, MemberRow, ProjectRow, TaskRow

DEFAULT_PROJECT_COLOR = "#6366F1"
STUCK_AFTER_DAYS = 3
ACTIVE_MEMBER_WINDOW = timedelta(hours=24)
RECENTLY_ASSIGNED_DAYS = 7
CHART_DAYS = 7

OVERDUE_LIMIT = 10
STUCK_LIMIT = 8
SHORT_LIST_LIMIT = 5
PERFORMER_LIMIT = 5
ACTIVITY_LIMIT = 20


@dataclass(frozen=True)
class _Classified:
    task: TaskRow
    status_name: str
    done: bool
    in_progress: bool


def _local(value: Optional[datetime], now: datetime) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value).astimezone(now.tzinfo)


def _local_date(value: Optional[datetime], now: datetime) -> Optional[date]:
    local = _local(value, now)
    return local.date() if local is not None else None


def whole_days_between(earlier: datetime, now: datetime) -> int:
    """Whole days elapsed from ``earlier`` to ``now``, rounded down."""
    return (now - as_utc(earlier)).days


def week_bounds(today: date) -> Tuple[date, date]:
    """Monday and Sunday of the week containing ``today``."""
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


def my_tasks_order(task: TaskRow) -> tuple:
    """Dated before undated, then due date, then creation time, then id."""
    return (
        task.due_date is None,
        task.due_date or date.min,
        as_utc(task.created_at),
        str(task.id),
    )


class _StatusIndex:
    """Completed-status lookups per project."""

    def __init__(self, snapshot: DashboardSnapshot):
        self.names: Dict[UUID, str] = {}
        completed_ids = set()
        completed_names: Dict[UUID, set] = defaultdict(set)
        for status in snapshot.statuses:
            self.names[status.id] = status.name
            if status.is_completed:
                completed_ids.add(status.id)
                completed_names[status.project_id].add(status.name.lower())
        self.completed_ids: FrozenSet[UUID] = frozenset(completed_ids)
        self.completed_names = {k: frozenset(v) for k, v in completed_names.items()}

    def status_name(self, task: TaskRow) -> str:
        if task.custom_status_id is not None and task.custom_status_id in self.names:
            return self.names[task.custom_status_id]
        return task.status

    def is_done(self, task: TaskRow) -> bool:
        if task.custom_status_id is not None and task.custom_status_id in self.completed_ids:
            return True
        names = self.completed_names.get(task.project_id, frozenset())
        if self.status_name(task).lower() in names:
            return True
        return enum_value(task.status) == TaskStatus.DONE.value


def _classify(snapshot: DashboardSnapshot) -> List[_Classified]:
    index = _StatusIndex(snapshot)
    rows = []
    for task in snapshot.tasks:
        done = index.is_done(task)
        in_progress = not done and (
            task.first_started_at is not None
            or enum_value(task.status) == TaskStatus.IN_PROGRESS.value
        )
        rows.append(_Classified(task, index.status_name(task), done, in_progress))
    return rows


def _task_view(row: _Classified, projects: Dict[UUID, ProjectRow]) -> DashboardTask:
    task = row.task
    project = projects.get(task.project_id)
    return DashboardTask(
        id=task.id,
        title=task.title,
        status=row.status_name,
        priority=task.priority,
        project_id=task.project_id,
        project_name=project.name if project else None,
        project_color=project.color if project else None,
        due_date=task.due_date,
        assigned_to=task.assigned_to,
        created_at=as_utc(task.created_at),
        completed_at=as_utc(task.completed_at),
        first_started_at=as_utc(task.first_started_at),
        custom_status_id=task.custom_status_id,
    )


def completion_rate(rows: Iterable[_Classified], now: datetime) -> int:
    """Share of dated, completed tasks finished on or before their due date."""
    eligible = [
        r.task for r in rows
        if r.done and r.task.due_date is not None and r.task.completed_at is not None
    ]
    if not eligible:
        return 0
    on_time = sum(1 for t in eligible if _local_date(t.completed_at, now) <= t.due_date)
    return round(on_time / len(eligible) * 100)


def _hours_this_week(snapshot: DashboardSnapshot, now: datetime) -> Dict[UUID, float]:
    monday, sunday = week_bounds(now.date())
    seconds: Dict[UUID, float] = defaultdict(float)
    for session in snapshot.sessions:
        if session.ended_at is None:
            continue
        started = _local_date(session.started_at, now)
        if not monday <= started <= sunday:
            continue
        if session.duration_seconds is not None:
            seconds[session.user_id] += session.duration_seconds
        else:
            seconds[session.user_id] += (
                as_utc(session.ended_at) - as_utc(session.started_at)
            ).total_seconds()
    return {user_id: total / 3600 for user_id, total in seconds.items()}


def _chart(rows: List[_Classified], now: datetime) -> List[ChartPoint]:
    today = now.date()
    created: Dict[date, int] = defaultdict(int)
    completed: Dict[date, int] = defaultdict(int)
    for row in rows:
        created[_local_date(row.task.created_at, now)] += 1
        if row.done and row.task.completed_at is not None:
            completed[_local_date(row.task.completed_at, now)] += 1

    points = []
    for offset in range(CHART_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        points.append(ChartPoint(
            day=day,
            name=day.strftime("%a"),
            completed=completed[day],
            created=created[day],
        ))
    return points


def _activities(
    snapshot: DashboardSnapshot,
    members: Dict[UUID, MemberRow],
    projects: Dict[UUID, ProjectRow],
) -> List[ActivityItem]:
    latest = sorted(snapshot.activities, key=lambda a: as_utc(a.created_at), reverse=True)
    items = []
    for activity in latest[:ACTIVITY_LIMIT]:
        actor = members.get(activity.actor_id) if activity.actor_id else None
        project = projects.get(activity.project_id) if activity.project_id else None
        items.append(ActivityItem(
            id=activity.id,
            action_type=activity.action_type,
            entity_type=activity.entity_type,
            description=activity.description,
            actor_name=(actor.full_name if actor and actor.full_name else "Someone"),
            actor_avatar=actor.avatar_url if actor else None,
            project_name=project.name if project else None,
            project_color=project.color if project else None,
            created_at=as_utc(activity.created_at),
            task_id=activity.task_id,
        ))
    return items


def _subscription_info(snapshot: DashboardSnapshot, now: datetime) -> Optional[SubscriptionInfo]:
    row = snapshot.subscription
    if row is None:
        return None
    return SubscriptionInfo(
        plan_name=row.plan_name or "Free",
        status=row.status,
        members_used=len(snapshot.members),
        members_limit=row.max_members,
        days_until_expiry=days_until(row.expires_at, now),
        expires_at=as_utc(row.expires_at),
    )


def aggregate_dashboard(
    snapshot: DashboardSnapshot,
    *,
    user_id: UUID,
    role: WorkspaceRoleEnum,
    now: datetime,
    stuck_after_days: int = STUCK_AFTER_DAYS,
) -> DashboardResponse:
    """
    Build the dashboard for one user from one snapshot.

    Args:
        snapshot: Rows read by a single dashboard run
        user_id: The viewing user; drives "my tasks" and "recently assigned"
        role: The viewer's workspace role; managers get member workloads and
            owners get the subscription summary
        now: Timezone-aware reference time in the dashboard timezone
        stuck_after_days: Whole days without an update before an open task is stuck

    Returns:
        DashboardResponse
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    role = WorkspaceRoleEnum(role)
    today = now.date()
    tomorrow = today + timedelta(days=1)
    monday, sunday = week_bounds(today)

    projects = {p.id: p for p in snapshot.projects}
    members = {m.user_id: m for m in snapshot.members}
    rows = _classify(snapshot)
    open_rows = [r for r in rows if not r.done]

    overdue = sorted(
        (r for r in open_rows if r.task.due_date is not None and r.task.due_date < today),
        key=lambda r: (r.task.due_date, str(r.task.id)),
    )

    stuck = []
    for row in open_rows:
        days = whole_days_between(row.task.updated_at, now)
        if days < stuck_after_days:
            continue
        project = projects.get(row.task.project_id)
        assignee = members.get(row.task.assigned_to) if row.task.assigned_to else None
        stuck.append(StuckTask(
            id=row.task.id,
            title=row.task.title,
            status=row.status_name,
            project_name=project.name if project else "",
            project_color=(project.color if project and project.color else DEFAULT_PROJECT_COLOR),
            days_stuck=days,
            assigned_to_name=assignee.display_name if assignee else None,
        ))
    stuck.sort(key=lambda s: (-s.days_stuck, str(s.id)))

    mine = sorted(
        (r for r in open_rows if r.task.assigned_to == user_id),
        key=lambda r: my_tasks_order(r.task),
    )
    recently_assigned = sorted(
        (
            r for r in mine
            if whole_days_between(r.task.created_at, now) <= RECENTLY_ASSIGNED_DAYS
        ),
        key=lambda r: as_utc(r.task.created_at),
        reverse=True,
    )
    recently_completed = sorted(
        (r for r in rows if r.done and r.task.completed_at is not None),
        key=lambda r: as_utc(r.task.completed_at),
        reverse=True,
    )
    upcoming = sorted(
        (r for r in open_rows if r.task.due_date is not None and r.task.due_date >= today),
        key=lambda r: (r.task.due_date, as_utc(r.task.created_at), str(r.task.id)),
    )

    hours = _hours_this_week(snapshot, now)
    stats = DashboardStats(
        total_projects=len(snapshot.projects),
        total_tasks=len(rows),
        completed_tasks=sum(1 for r in rows if r.done),
        total_members=len(snapshot.members),
        overdue_tasks=len(overdue),
        in_progress_tasks=sum(1 for r in rows if r.in_progress),
        active_members=sum(
            1 for m in snapshot.members
            if m.last_active_at is not None and now - as_utc(m.last_active_at) <= ACTIVE_MEMBER_WINDOW
        ),
        tasks_this_week=sum(
            1 for r in rows if r.task.due_date is not None and monday <= r.task.due_date <= sunday
        ),
        tasks_due_today=sum(1 for r in open_rows if r.task.due_date == today),
        tasks_due_tomorrow=sum(1 for r in open_rows if r.task.due_date == tomorrow),
        tasks_due_this_month=sum(
            1 for r in open_rows
            if r.task.due_date is not None
            and (r.task.due_date.year, r.task.due_date.month) == (today.year, today.month)
        ),
        completion_rate=completion_rate(rows, now),
        total_hours_this_week=round(sum(hours.values()), 1),
    )

    per_member_total: Dict[UUID, int] = defaultdict(int)
    per_member_done: Dict[UUID, int] = defaultdict(int)
    for row in rows:
        if row.task.assigned_to is None:
            continue
        per_member_total[row.task.assigned_to] += 1
        if row.done:
            per_member_done[row.task.assigned_to] += 1

    performers = sorted(
        (
            Performer(
                id=m.user_id,
                name=m.display_name,
                avatar=m.avatar_url,
                completed_tasks=per_member_done[m.user_id],
                total_tasks=per_member_total[m.user_id],
            )
            for m in snapshot.members
        ),
        key=lambda p: (-p.completed_tasks, p.name),
    )[:PERFORMER_LIMIT]

    assignee_stats = sorted(
        (
            AssigneeStat(
                id=m.user_id,
                name=m.display_name,
                avatar=m.avatar_url,
                active_tasks=per_member_total[m.user_id] - per_member_done[m.user_id],
                total_tasks=per_member_total[m.user_id],
            )
            for m in snapshot.members
        ),
        key=lambda a: (-a.active_tasks, a.name),
    )

    member_workloads: List[MemberWorkload] = []
    if role.is_manager:
        member_workloads = sorted(
            (
                MemberWorkload(
                    id=m.user_id,
                    name=m.display_name,
                    avatar=m.avatar_url,
                    role=enum_value(m.role),
                    active_tasks=per_member_total[m.user_id] - per_member_done[m.user_id],
                    completed_tasks=per_member_done[m.user_id],
                    hours_this_week=round(hours.get(m.user_id, 0.0), 1),
                )
                for m in snapshot.members
            ),
            key=lambda w: (-w.active_tasks, w.name),
        )

    project_progress = [
        ProjectProgress(
            id=p.id,
            name=p.name,
            color=p.color or DEFAULT_PROJECT_COLOR,
            total_tasks=sum(1 for r in rows if r.task.project_id == p.id),
            completed_tasks=sum(1 for r in rows if r.task.project_id == p.id and r.done),
        )
        for p in snapshot.projects
    ]

    return DashboardResponse(
        generated_at=now,
        stats=stats,
        upcoming_tasks=[_task_view(r, projects) for r in upcoming[:SHORT_LIST_LIMIT]],
        my_tasks=[_task_view(r, projects) for r in mine],
        overdue_tasks=[_task_view(r, projects) for r in overdue[:OVERDUE_LIMIT]],
        recently_completed=[_task_view(r, projects) for r in recently_completed[:SHORT_LIST_LIMIT]],
        recently_assigned=[_task_view(r, projects) for r in recently_assigned[:SHORT_LIST_LIMIT]],
        chart_data=_chart(rows, now),
        activities=_activities(snapshot, members, projects),
        performers=performers,
        assignee_stats=assignee_stats,
        project_progress=project_progress,
        member_workloads=member_workloads,
        subscription_info=_subscription_info(snapshot, now) if role == WorkspaceRoleEnum.OWNER else None,
        stuck_tasks=stuck[:STUCK_LIMIT],
    )
