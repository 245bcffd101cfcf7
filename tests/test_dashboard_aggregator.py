"""
Unit tests for the pure dashboard aggregation.
"""
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from hamro_task.modules.dashboard.aggregator import (
    aggregate_dashboard,
    my_tasks_order,
    week_bounds,
    whole_days_between,
)
from hamro_task.modules.dashboard.snapshot import (
    ActivityRow,
    DashboardSnapshot,
    MemberRow,
    ProjectRow,
    StatusRow,
    SubscriptionRow,
    TaskRow,
    WorkSessionRow,
)
from hamro_task.modules.workspace.models import WorkspaceRoleEnum

KATHMANDU = ZoneInfo("Asia/Kathmandu")

# Wednesday 11 March 2026, mid-morning in Kathmandu
NOW = datetime(2026, 3, 11, 10, 0, tzinfo=KATHMANDU)
TODAY = NOW.date()


def utc(days_ago: float = 0, hours_ago: float = 0) -> datetime:
    return NOW.astimezone(UTC) - timedelta(days=days_ago, hours=hours_ago)


class Board:
    """Two projects, each with a Todo default and a completed Done status."""

    def __init__(self):
        self.me = uuid4()
        self.other = uuid4()
        self.project_a = ProjectRow(id=uuid4(), name="Website", color="#22C55E")
        self.project_b = ProjectRow(id=uuid4(), name="Mobile")
        self.todo_a = StatusRow(id=uuid4(), project_id=self.project_a.id, name="Todo", is_default=True)
        self.done_a = StatusRow(id=uuid4(), project_id=self.project_a.id, name="Done", is_completed=True)
        self.todo_b = StatusRow(id=uuid4(), project_id=self.project_b.id, name="Todo", is_default=True)
        self.done_b = StatusRow(id=uuid4(), project_id=self.project_b.id, name="Done", is_completed=True)
        self.members = (
            MemberRow(user_id=self.me, role="owner", email="sita@example.com", full_name="Sita Sharma",
                      last_active_at=utc(hours_ago=2)),
            MemberRow(user_id=self.other, role="member", email="ram@example.com",
                      last_active_at=utc(days_ago=3)),
        )

    def task(self, project=None, column=None, **kwargs) -> TaskRow:
        project = project or self.project_a
        column = column or (self.todo_a if project is self.project_a else self.todo_b)
        defaults = dict(
            id=uuid4(),
            project_id=project.id,
            title="Task",
            status="todo",
            custom_status_id=column.id,
            created_at=utc(days_ago=1),
            updated_at=utc(hours_ago=1),
        )
        defaults.update(kwargs)
        return TaskRow(**defaults)

    def done(self, project=None, **kwargs) -> TaskRow:
        project = project or self.project_a
        column = self.done_a if project is self.project_a else self.done_b
        kwargs.setdefault("status", "done")
        return self.task(project=project, column=column, **kwargs)

    def snapshot(self, tasks, **kwargs) -> DashboardSnapshot:
        return DashboardSnapshot(
            projects=(self.project_a, self.project_b),
            statuses=(self.todo_a, self.done_a, self.todo_b, self.done_b),
            members=self.members,
            tasks=tuple(tasks),
            **kwargs,
        )

    def aggregate(self, tasks, role=WorkspaceRoleEnum.OWNER, **kwargs):
        return aggregate_dashboard(self.snapshot(tasks, **kwargs), user_id=self.me, role=role, now=NOW)


@pytest.fixture
def board():
    return Board()


class TestDueToday:
    """Tasks due today are counted independently of input order."""

    def test_count_matches_tasks_due_today(self, board):
        tasks = [
            board.task(due_date=TODAY),
            board.task(due_date=TODAY, project=board.project_b),
            board.task(due_date=TODAY + timedelta(days=1)),
            board.task(due_date=TODAY - timedelta(days=1)),
            board.task(),
        ]

        result = board.aggregate(tasks)

        assert result.stats.tasks_due_today == 2
        assert result.stats.tasks_due_tomorrow == 1

    def test_count_is_independent_of_order(self, board):
        tasks = [board.task(due_date=TODAY + timedelta(days=d)) for d in (-2, 0, 0, 1, 0, 5)]

        forward = board.aggregate(tasks)
        backward = board.aggregate(list(reversed(tasks)))

        assert forward.stats.tasks_due_today == backward.stats.tasks_due_today == 3

    def test_completed_tasks_are_not_due(self, board):
        result = board.aggregate([board.done(due_date=TODAY, completed_at=utc(hours_ago=1))])

        assert result.stats.tasks_due_today == 0


class TestOverdue:
    """Open tasks due strictly before today, ascending by due date."""

    def test_sorted_ascending_by_due_date(self, board):
        tasks = [
            board.task(title="three days", due_date=TODAY - timedelta(days=3)),
            board.task(title="one day", due_date=TODAY - timedelta(days=1)),
            board.task(title="ten days", due_date=TODAY - timedelta(days=10)),
        ]

        result = board.aggregate(tasks)

        assert [t.title for t in result.overdue_tasks] == ["ten days", "three days", "one day"]
        assert result.stats.overdue_tasks == 3

    def test_due_today_is_not_overdue(self, board):
        result = board.aggregate([board.task(due_date=TODAY)])

        assert result.overdue_tasks == []

    def test_completed_task_is_not_overdue(self, board):
        result = board.aggregate([
            board.done(due_date=TODAY - timedelta(days=4), completed_at=utc(days_ago=1)),
        ])

        assert result.overdue_tasks == []

    def test_list_is_capped_but_count_is_not(self, board):
        tasks = [board.task(due_date=TODAY - timedelta(days=d)) for d in range(1, 15)]

        result = board.aggregate(tasks)

        assert len(result.overdue_tasks) == 10
        assert result.stats.overdue_tasks == 14


class TestStuck:
    """Open tasks without an update for three whole days."""

    def test_three_days_is_stuck_two_is_not(self, board):
        stale = board.task(title="stale", updated_at=utc(days_ago=3))
        fresh = board.task(title="fresh", updated_at=utc(days_ago=2))

        result = board.aggregate([stale, fresh])

        assert [t.title for t in result.stuck_tasks] == ["stale"]
        assert result.stuck_tasks[0].days_stuck == 3

    def test_just_under_three_days_is_not_stuck(self, board):
        almost = board.task(updated_at=utc(days_ago=3) + timedelta(minutes=1))

        result = board.aggregate([almost])

        assert result.stuck_tasks == []

    def test_completed_task_is_never_stuck(self, board):
        result = board.aggregate([board.done(updated_at=utc(days_ago=30), completed_at=utc(days_ago=30))])

        assert result.stuck_tasks == []

    def test_longest_stuck_first_with_assignee_name(self, board):
        tasks = [
            board.task(title="a", updated_at=utc(days_ago=4), assigned_to=board.other),
            board.task(title="b", updated_at=utc(days_ago=9), project=board.project_b),
        ]

        result = board.aggregate(tasks)

        assert [t.title for t in result.stuck_tasks] == ["b", "a"]
        assert result.stuck_tasks[1].assigned_to_name == "ram"
        assert result.stuck_tasks[0].project_color == "#6366F1"


class TestCompletionRate:
    def test_zero_without_dated_completions(self, board):
        tasks = [
            board.task(due_date=TODAY),
            board.done(completed_at=utc(days_ago=1)),
        ]

        assert board.aggregate(tasks).stats.completion_rate == 0

    def test_on_time_share(self, board):
        tasks = [
            board.done(due_date=TODAY, completed_at=utc(hours_ago=1)),
            board.done(due_date=TODAY - timedelta(days=1), completed_at=utc(days_ago=2)),
            board.done(due_date=TODAY - timedelta(days=5), completed_at=utc(days_ago=1)),
        ]

        # Two of three finished on or before their due date
        assert board.aggregate(tasks).stats.completion_rate == 67

    def test_completion_date_is_taken_in_local_time(self, board):
        # 19:00 UTC on the 10th is already the 11th in Kathmandu
        completed = datetime(2026, 3, 10, 19, 0, tzinfo=UTC)
        task = board.done(due_date=date(2026, 3, 10), completed_at=completed)

        assert board.aggregate([task]).stats.completion_rate == 0


class TestStatusLookup:
    """Completion follows the project's completed statuses."""

    def test_marking_done_clears_overdue_and_stuck(self, board):
        task = board.task(due_date=TODAY - timedelta(days=5), updated_at=utc(days_ago=6))
        before = board.aggregate([task])
        assert len(before.overdue_tasks) == 1
        assert len(before.stuck_tasks) == 1

        finished = replace(task, custom_status_id=board.done_a.id, completed_at=utc(hours_ago=1))
        after = board.aggregate([finished])

        assert after.overdue_tasks == []
        assert after.stuck_tasks == []
        assert after.stats.completed_tasks == 1

    def test_status_name_matches_completed_status_of_same_project(self, board):
        task = board.task(custom_status_id=None, status="DONE", due_date=TODAY - timedelta(days=2))

        result = board.aggregate([task])

        assert result.stats.completed_tasks == 1
        assert result.overdue_tasks == []

    def test_completed_status_of_other_project_does_not_apply(self, board):
        shipped = StatusRow(id=uuid4(), project_id=board.project_b.id, name="Shipped", is_completed=True)
        task = board.task(custom_status_id=None, status="Shipped")
        snapshot = replace(board.snapshot([task]), statuses=(board.todo_a, board.done_a, shipped))

        result = aggregate_dashboard(snapshot, user_id=board.me, role=WorkspaceRoleEnum.OWNER, now=NOW)

        assert result.stats.completed_tasks == 0


class TestScenario:
    def test_two_projects_three_tasks(self, board):
        tasks = [
            board.task(title="late", due_date=TODAY - timedelta(days=1)),
            board.task(title="today", due_date=TODAY),
            board.done(title="shipped late", due_date=TODAY - timedelta(days=3), completed_at=utc(days_ago=1)),
        ]

        result = board.aggregate(tasks)

        assert [t.title for t in result.overdue_tasks] == ["late"]
        assert result.stats.tasks_due_today == 1
        assert result.stats.completion_rate == 0
        assert result.stats.total_projects == 2
        assert result.stats.total_tasks == 3
        assert result.stats.completed_tasks == 1
        progress = {p.name: (p.completed_tasks, p.total_tasks) for p in result.project_progress}
        assert progress == {"Website": (1, 3), "Mobile": (0, 0)}


class TestMyTasks:
    def test_dated_first_then_by_creation_and_id(self, board):
        undated_old = board.task(title="undated old", assigned_to=board.me, created_at=utc(days_ago=5))
        undated_new = board.task(title="undated new", assigned_to=board.me, created_at=utc(days_ago=1))
        later = board.task(title="later", assigned_to=board.me, due_date=TODAY + timedelta(days=3))
        sooner = board.task(title="sooner", assigned_to=board.me, due_date=TODAY)
        not_mine = board.task(title="other", assigned_to=board.other, due_date=TODAY)

        result = board.aggregate([undated_new, later, not_mine, undated_old, sooner])

        assert [t.title for t in result.my_tasks] == ["sooner", "later", "undated old", "undated new"]

    def test_order_is_total_for_identical_keys(self, board):
        created = utc(days_ago=2)
        first = board.task(assigned_to=board.me, created_at=created)
        second = board.task(assigned_to=board.me, created_at=created)

        assert sorted([second, first], key=my_tasks_order) == sorted([first, second], key=my_tasks_order)

    def test_recently_assigned_newest_first(self, board):
        old = board.task(title="old", assigned_to=board.me, created_at=utc(days_ago=10))
        newer = board.task(title="newer", assigned_to=board.me, created_at=utc(days_ago=1))
        newest = board.task(title="newest", assigned_to=board.me, created_at=utc(hours_ago=1))

        result = board.aggregate([old, newer, newest])

        assert [t.title for t in result.recently_assigned] == ["newest", "newer"]


class TestRoleGating:
    def test_member_sees_no_workloads_or_billing(self, board):
        subscription = SubscriptionRow(plan_name="Basic", status="active", max_members=10)

        result = board.aggregate([board.task()], role=WorkspaceRoleEnum.MEMBER, subscription=subscription)

        assert result.member_workloads == []
        assert result.subscription_info is None

    def test_admin_sees_workloads_but_not_billing(self, board):
        subscription = SubscriptionRow(plan_name="Basic", status="active", max_members=10)

        result = board.aggregate([board.task()], role=WorkspaceRoleEnum.ADMIN, subscription=subscription)

        assert len(result.member_workloads) == 2
        assert result.subscription_info is None

    def test_workloads_busiest_first(self, board):
        tasks = [
            board.task(assigned_to=board.me),
            board.task(assigned_to=board.other),
            board.task(assigned_to=board.other),
            board.done(assigned_to=board.me),
        ]

        result = board.aggregate(tasks, role=WorkspaceRoleEnum.ADMIN)

        assert [(w.id, w.active_tasks) for w in result.member_workloads] == [(board.other, 2), (board.me, 1)]

    def test_owner_sees_subscription_usage(self, board):
        subscription = SubscriptionRow(
            plan_name="Basic", status="active", max_members=10, expires_at=utc(days_ago=-5)
        )

        result = board.aggregate([], subscription=subscription)

        info = result.subscription_info
        assert info.plan_name == "Basic"
        assert info.members_used == 2
        assert info.members_limit == 10
        assert info.days_until_expiry == 5


class TestOtherStats:
    def test_active_members_within_a_day(self, board):
        assert board.aggregate([]).stats.active_members == 1

    def test_in_progress_counts_started_open_tasks(self, board):
        tasks = [
            board.task(first_started_at=utc(days_ago=1)),
            board.task(status="in_progress", custom_status_id=None),
            board.done(first_started_at=utc(days_ago=2), completed_at=utc(days_ago=1)),
        ]

        assert board.aggregate(tasks).stats.in_progress_tasks == 2

    def test_chart_covers_seven_days_ending_today(self, board):
        tasks = [
            board.task(created_at=utc(hours_ago=1)),
            board.done(created_at=utc(days_ago=2), completed_at=utc(hours_ago=2)),
        ]

        chart = board.aggregate(tasks).chart_data

        assert len(chart) == 7
        assert chart[-1].day == TODAY
        assert chart[-1].name == "Wed"
        assert chart[-1].created == 1
        assert chart[-1].completed == 1
        assert chart[-3].created == 1

    def test_hours_this_week_only_counts_finished_sessions(self, board):
        task = board.task()
        monday_morning = datetime(2026, 3, 9, 9, 0, tzinfo=KATHMANDU).astimezone(UTC)
        sessions = (
            WorkSessionRow(task_id=task.id, user_id=board.me, started_at=monday_morning,
                           ended_at=monday_morning + timedelta(hours=2), duration_seconds=7200),
            WorkSessionRow(task_id=task.id, user_id=board.other, started_at=monday_morning,
                           ended_at=monday_morning + timedelta(minutes=30)),
            WorkSessionRow(task_id=task.id, user_id=board.me, started_at=utc(hours_ago=1)),
        )

        result = board.aggregate([task], sessions=sessions)

        assert result.stats.total_hours_this_week == 2.5
        hours = {w.id: w.hours_this_week for w in result.member_workloads}
        assert hours[board.me] == 2.0
        assert hours[board.other] == 0.5

    def test_activity_actor_falls_back_to_someone(self, board):
        activities = (
            ActivityRow(id=uuid4(), action_type="created", entity_type="task", created_at=utc(hours_ago=3),
                        actor_id=board.me, project_id=board.project_a.id),
            ActivityRow(id=uuid4(), action_type="deleted", entity_type="task", created_at=utc(hours_ago=1),
                        actor_id=uuid4()),
        )

        result = board.aggregate([], activities=activities)

        assert [a.actor_name for a in result.activities] == ["Someone", "Sita Sharma"]
        assert result.activities[1].project_name == "Website"

    def test_naive_now_is_rejected(self, board):
        with pytest.raises(ValueError):
            aggregate_dashboard(board.snapshot([]), user_id=board.me, role=WorkspaceRoleEnum.OWNER,
                                now=datetime(2026, 3, 11, 10, 0))


class TestHelpers:
    def test_week_bounds(self):
        assert week_bounds(date(2026, 3, 11)) == (date(2026, 3, 9), date(2026, 3, 15))
        assert week_bounds(date(2026, 3, 9)) == (date(2026, 3, 9), date(2026, 3, 15))

    def test_whole_days_accepts_naive_utc(self):
        naive = (NOW.astimezone(UTC) - timedelta(days=3, hours=1)).replace(tzinfo=None)

        assert whole_days_between(naive, NOW) == 3
