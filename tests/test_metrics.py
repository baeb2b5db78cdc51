"""Tests for the metrics aggregator (metrics.py)"""
from datetime import datetime, timezone

import pytest

from taskflow.metrics import (
    activity_by_day,
    completion_rate,
    compute_project_analytics,
    compute_user_dashboard,
    priority_counts,
    status_counts,
    time_tracking,
)
from taskflow.schema import (
    DAY_MS,
    WEEK_MS,
    ActivityEvent,
    Comment,
    Project,
    TaskPriority,
    TaskStatus,
    User,
)

from conftest import HOUR_MS, NOW, make_task


def event(event_id, project_id="p1", created_at=NOW, description="something happened"):
    return ActivityEvent(event_id=event_id, project_id=project_id,
                         description=description, created_at=created_at)


@pytest.fixture
def apollo():
    return Project(project_id="p1", name="Apollo", owner_id="u1", member_ids=["u1", "u2", "u3"])


@pytest.fixture
def users():
    return {
        "u1": User("u1", "Alice", role="admin"),
        "u2": User("u2", "Bob"),
        "u3": User("u3", "", email="carol@example.com"),
    }


class TestCounts:
    """Status/priority counts and completion rate."""

    def test_counts_are_zero_filled(self):
        assert status_counts([]) == {"todo": 0, "in_progress": 0, "review": 0, "completed": 0}
        assert priority_counts([]) == {"low": 0, "medium": 0, "high": 0}

    def test_counts_sum_to_total(self):
        tasks = [
            make_task("a", status=TaskStatus.REVIEW, priority=TaskPriority.HIGH),
            make_task("b", status=TaskStatus.REVIEW, priority=TaskPriority.LOW),
            make_task("c", status=TaskStatus.TODO),
        ]
        assert sum(status_counts(tasks).values()) == 3
        assert sum(priority_counts(tasks).values()) == 3
        assert status_counts(tasks)["review"] == 2
        assert priority_counts(tasks) == {"low": 1, "medium": 1, "high": 1}

    def test_completion_rate_empty_is_zero(self):
        assert completion_rate([]) == 0

    def test_completion_rate_rounds(self):
        tasks = [make_task(str(i), status=TaskStatus.COMPLETED if i < 3 else TaskStatus.TODO)
                 for i in range(7)]
        assert completion_rate(tasks) == 43

    def test_completion_rate_rounds_half_up(self):
        tasks = [make_task(str(i), status=TaskStatus.COMPLETED if i < 1 else TaskStatus.TODO)
                 for i in range(8)]
        assert completion_rate(tasks) == 13


class TestTimeTracking:

    def test_over_estimate(self):
        tracking = time_tracking([
            make_task("a", estimated_hours=6, actual_hours=9),
            make_task("b", estimated_hours=4, actual_hours=5),
        ])
        assert tracking.estimated == 10
        assert tracking.actual == 14
        assert tracking.variance == 4

    def test_under_estimate(self):
        tracking = time_tracking([make_task("a", estimated_hours=10, actual_hours=6)])
        assert tracking.variance == -4

    def test_unset_fields_contribute_nothing(self):
        tracking = time_tracking([
            make_task("a", estimated_hours=3),
            make_task("b", actual_hours=1.5),
            make_task("c"),
        ])
        assert tracking.to_dict() == {"estimated": 3, "actual": 1.5, "variance": -1.5}

    def test_no_tasks(self):
        assert time_tracking([]).to_dict() == {"estimated": 0, "actual": 0, "variance": 0}


class TestActivityByDay:

    def test_always_seven_entries_oldest_first(self):
        days = activity_by_day([], NOW)
        assert len(days) == 7
        assert [d.count for d in days] == [0] * 7
        assert days == sorted(days, key=lambda d: d.date)

    def test_last_entry_is_today_utc_midnight(self):
        days = activity_by_day([], NOW)
        today = int(datetime(2026, 3, 11, tzinfo=timezone.utc).timestamp() * 1000)
        assert days[-1].date == today
        assert days[0].date == today - 6 * DAY_MS

    def test_events_land_in_their_utc_day(self):
        today = activity_by_day([], NOW)[-1].date
        oldest = today - 6 * DAY_MS
        events = [
            event("e1", created_at=NOW),
            event("e2", created_at=today),              # midnight belongs to today
            event("e3", created_at=today - 1),          # last ms of yesterday
            event("e4", created_at=oldest),
            event("e5", created_at=oldest - 1),         # outside the window
        ]
        counts = [d.count for d in activity_by_day(events, NOW)]
        assert counts == [1, 0, 0, 0, 0, 1, 2]


class TestProjectAnalytics:

    def test_end_to_end(self, apollo, users):
        tasks = [
            make_task("a", status=TaskStatus.COMPLETED, assignee_id="u2"),
            make_task("b", status=TaskStatus.COMPLETED, assignee_id="u2"),
            make_task("c", status=TaskStatus.IN_PROGRESS),
            make_task("d", status=TaskStatus.TODO, due_date=NOW - DAY_MS),
        ]
        view = compute_project_analytics(apollo, tasks, [], [], users, NOW)

        assert view.total_tasks == 4
        assert view.completion_rate == 50
        assert view.overdue_tasks == 1
        assert view.status_counts == {"todo": 1, "in_progress": 1, "review": 0, "completed": 2}

    def test_completed_tasks_are_never_overdue(self, apollo, users):
        tasks = [make_task("a", status=TaskStatus.COMPLETED, due_date=NOW - 3 * DAY_MS)]
        assert compute_project_analytics(apollo, tasks, [], [], users, NOW).overdue_tasks == 0

    def test_due_exactly_now_is_not_overdue(self, apollo, users):
        tasks = [make_task("a", due_date=NOW)]
        assert compute_project_analytics(apollo, tasks, [], [], users, NOW).overdue_tasks == 0

    @pytest.mark.parametrize("window_days", [1, 3, 30])
    def test_day_series_length_ignores_window(self, apollo, users, window_days):
        events = [event("e1", created_at=NOW - 2 * DAY_MS)]
        view = compute_project_analytics(apollo, [], [], events, users, NOW, window_days=window_days)
        assert len(view.activity_by_day) == 7
        assert sum(d.count for d in view.activity_by_day) == 1

    def test_empty_project(self, apollo, users):
        view = compute_project_analytics(apollo, [], [], [], users, NOW)
        assert view.total_tasks == 0
        assert view.completion_rate == 0
        assert view.recent_activity_count == 0
        assert len(view.activity_by_day) == 7
        assert [m.completed_tasks for m in view.member_productivity] == [0, 0, 0]

    def test_recent_activity_window(self, apollo, users):
        events = [
            event("e1", created_at=NOW),
            event("e2", created_at=NOW - WEEK_MS),          # boundary included
            event("e3", created_at=NOW - WEEK_MS - 1),
            event("e4", project_id="p2", created_at=NOW),   # other project
        ]
        view = compute_project_analytics(apollo, [], [], events, users, NOW)
        assert view.recent_activity_count == 2

    def test_member_productivity_in_member_order(self, apollo, users):
        tasks = [
            make_task("a", status=TaskStatus.COMPLETED, assignee_id="u3"),
            make_task("b", status=TaskStatus.COMPLETED, assignee_id="u3"),
            make_task("c", status=TaskStatus.REVIEW, assignee_id="u1"),
            make_task("d", status=TaskStatus.COMPLETED, assignee_id="u1"),
        ]
        view = compute_project_analytics(apollo, tasks, [], [], users, NOW)
        rows = [(m.user_id, m.name, m.role, m.completed_tasks) for m in view.member_productivity]
        assert rows == [
            ("u1", "Alice", "admin", 1),
            ("u2", "Bob", "member", 0),
            ("u3", "carol@example.com", "member", 2),
        ]

    def test_unknown_member_still_listed(self, apollo):
        view = compute_project_analytics(apollo, [], [], [], {}, NOW)
        assert [m.name for m in view.member_productivity] == ["Unknown"] * 3

    def test_ignores_other_projects_tasks(self, apollo, users):
        tasks = [make_task("a"), make_task("b", project_id="p2")]
        assert compute_project_analytics(apollo, tasks, [], [], users, NOW).total_tasks == 1

    def test_comment_total(self, apollo, users):
        tasks = [make_task("a"), make_task("b")]
        comments = [
            Comment("c1", "a", "u1", "hi", NOW),
            Comment("c2", "a", "u2", "yo", NOW),
            Comment("c3", "zzz", "u2", "elsewhere", NOW),
        ]
        assert compute_project_analytics(apollo, tasks, comments, [], users, NOW).total_comments == 2

    def test_deterministic(self, apollo, users):
        tasks = [make_task("a", estimated_hours=2, status=TaskStatus.COMPLETED, assignee_id="u1")]
        events = [event("e1", created_at=NOW - HOUR_MS)]
        first = compute_project_analytics(apollo, tasks, [], events, users, NOW).to_dict()
        second = compute_project_analytics(apollo, tasks, [], events, users, NOW).to_dict()
        assert first == second


class TestUserDashboard:

    @pytest.fixture
    def projects(self):
        return [
            Project(project_id="p1", name="Apollo", owner_id="u1", member_ids=["u1", "u2"]),
            Project(project_id="p2", name="Gemini", owner_id="u2", member_ids=["u2"]),
        ]

    def test_no_projects_is_zero_filled(self):
        view = compute_user_dashboard("u1", [], [], [], NOW)
        assert view.total_projects == 0
        assert view.total_assigned_tasks == 0
        assert view.overdue_tasks == 0
        assert view.tasks_due_this_week == 0
        assert view.my_task_status == {"todo": 0, "in_progress": 0, "review": 0, "completed": 0}
        assert view.upcoming_tasks == []
        assert view.recent_activity == []

    def test_counts_only_my_tasks(self, projects):
        tasks = [
            make_task("a", assignee_id="u2", status=TaskStatus.IN_PROGRESS),
            make_task("b", project_id="p2", assignee_id="u2", status=TaskStatus.COMPLETED),
            make_task("c", assignee_id="u1"),
            make_task("d"),
        ]
        view = compute_user_dashboard("u2", tasks, projects, [], NOW)
        assert view.total_projects == 2
        assert view.total_assigned_tasks == 2
        assert view.my_task_status == {"todo": 0, "in_progress": 1, "review": 0, "completed": 1}

    def test_overdue_and_due_this_week(self, projects):
        tasks = [
            make_task("a", assignee_id="u1", due_date=NOW - 1),                   # overdue
            make_task("b", assignee_id="u1", due_date=NOW - DAY_MS,
                      status=TaskStatus.COMPLETED),                               # done, not overdue
            make_task("c", assignee_id="u1", due_date=NOW),                       # due this week
            make_task("d", assignee_id="u1", due_date=NOW + WEEK_MS - 1),         # due this week
            make_task("e", assignee_id="u1", due_date=NOW + WEEK_MS),             # next week
        ]
        view = compute_user_dashboard("u1", tasks, projects, [], NOW)
        assert view.overdue_tasks == 1
        assert view.tasks_due_this_week == 2

    def test_upcoming_sorted_and_truncated(self, projects):
        tasks = [
            make_task(f"t{i}", assignee_id="u1", due_date=NOW + (10 - i) * HOUR_MS)
            for i in range(8)
        ]
        tasks.append(make_task("done", assignee_id="u1", due_date=NOW, status=TaskStatus.COMPLETED))
        tasks.append(make_task("nodue", assignee_id="u1"))

        view = compute_user_dashboard("u1", tasks, projects, [], NOW)
        assert [t.task_id for t in view.upcoming_tasks] == ["t7", "t6", "t5", "t4", "t3"]

    def test_recent_activity_across_projects(self, projects):
        events = [
            event("e1", "p1", NOW - 5 * HOUR_MS),
            event("e2", "p2", NOW - 1 * HOUR_MS),
            event("e3", "p3", NOW),                   # not accessible
            event("e4", "p1", NOW - 2 * HOUR_MS),
            event("e5", "p2", NOW - 3 * HOUR_MS),
            event("e6", "p1", NOW - 4 * HOUR_MS),
            event("e7", "p2", NOW - 6 * HOUR_MS),
        ]
        view = compute_user_dashboard("u2", [], projects, events, NOW)
        assert [i.event.event_id for i in view.recent_activity] == ["e2", "e4", "e5", "e6", "e1"]
        assert view.recent_activity[0].project_name == "Gemini"
        assert view.recent_activity[1].to_dict()["project_name"] == "Apollo"

    def test_projects_without_membership_are_ignored(self, projects):
        tasks = [make_task("b", project_id="p2", assignee_id="u1")]
        view = compute_user_dashboard("u1", tasks, projects, [], NOW)
        assert view.total_projects == 1
        assert view.total_assigned_tasks == 0
