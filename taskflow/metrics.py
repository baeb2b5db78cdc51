"""
Metrics aggregator: project analytics and the personal dashboard.

Pure functions over an entity snapshot plus an explicit `now`. The same
snapshot and `now` always produce the same view; nothing is cached or
persisted, every read recomputes.

Time windows use UTC day boundaries:
    recent activity   created_at in [now - window, now]
    due this week     due_date   in [now, now + window)
    activity_by_day   the 7 UTC calendar days ending with now's day (fixed)
"""
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterable

from .feed import FeedItem, build_feed, filter_events
from .schema import (
    DAY_MS,
    ActivityEvent,
    Comment,
    Project,
    Task,
    TaskPriority,
    TaskStatus,
    User,
    utc_day_start,
)

DEFAULT_WINDOW_DAYS = 7
ACTIVITY_DAYS = 7
UPCOMING_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 5


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Views
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class TimeTracking:
    estimated: float = 0.0
    actual: float = 0.0

    @property
    def variance(self) -> float:
        """Positive when the work ran over its estimate."""
        return self.actual - self.estimated

    def to_dict(self) -> Dict[str, float]:
        return {"estimated": self.estimated, "actual": self.actual, "variance": self.variance}


@dataclass
class DayActivity:
    date: int      # UTC start-of-day, epoch ms
    count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"date": self.date, "count": self.count}


@dataclass
class MemberProductivity:
    user_id: str
    name: str
    role: str
    completed_tasks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "role": self.role,
            "completed_tasks": self.completed_tasks,
        }


@dataclass
class ProjectAnalytics:
    project_id: str
    total_tasks: int
    completion_rate: int
    overdue_tasks: int
    status_counts: Dict[str, int]
    priority_counts: Dict[str, int]
    recent_activity_count: int
    time_tracking: TimeTracking
    activity_by_day: List[DayActivity]
    member_productivity: List[MemberProductivity]
    total_comments: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "total_tasks": self.total_tasks,
            "completion_rate": self.completion_rate,
            "overdue_tasks": self.overdue_tasks,
            "status_counts": dict(self.status_counts),
            "priority_counts": dict(self.priority_counts),
            "recent_activity_count": self.recent_activity_count,
            "time_tracking": self.time_tracking.to_dict(),
            "activity_by_day": [d.to_dict() for d in self.activity_by_day],
            "member_productivity": [m.to_dict() for m in self.member_productivity],
            "total_comments": self.total_comments,
        }


@dataclass
class UserDashboard:
    user_id: str
    total_projects: int = 0
    total_assigned_tasks: int = 0
    overdue_tasks: int = 0
    tasks_due_this_week: int = 0
    my_task_status: Dict[str, int] = field(default_factory=lambda: status_counts([]))
    upcoming_tasks: List[Task] = field(default_factory=list)
    recent_activity: List[FeedItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_projects": self.total_projects,
            "total_assigned_tasks": self.total_assigned_tasks,
            "overdue_tasks": self.overdue_tasks,
            "tasks_due_this_week": self.tasks_due_this_week,
            "my_task_status": dict(self.my_task_status),
            "upcoming_tasks": [t.to_dict() for t in self.upcoming_tasks],
            "recent_activity": [item.to_dict() for item in self.recent_activity],
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Building blocks
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def status_counts(tasks: Iterable[Task]) -> Dict[str, int]:
    """Count per status; all four keys always present."""
    counts = {status.value: 0 for status in TaskStatus}
    for task in tasks:
        counts[task.status.value] += 1
    return counts


def priority_counts(tasks: Iterable[Task]) -> Dict[str, int]:
    counts = {priority.value: 0 for priority in TaskPriority}
    for task in tasks:
        counts[task.priority.value] += 1
    return counts


def completion_rate(tasks: List[Task]) -> int:
    """Integer percentage of completed tasks, rounded half up."""
    if not tasks:
        return 0
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    return int(math.floor(100 * completed / len(tasks) + 0.5))


def count_overdue(tasks: Iterable[Task], now: int) -> int:
    return sum(1 for t in tasks if t.is_overdue(now))


def time_tracking(tasks: Iterable[Task]) -> TimeTracking:
    tracking = TimeTracking()
    for task in tasks:
        if task.estimated_hours is not None:
            tracking.estimated += task.estimated_hours
        if task.actual_hours is not None:
            tracking.actual += task.actual_hours
    return tracking


def activity_by_day(events: Iterable[ActivityEvent], now: int) -> List[DayActivity]:
    """One bucket per UTC day for the last ACTIVITY_DAYS days, oldest first, ending today."""
    days = ACTIVITY_DAYS
    today = utc_day_start(now)
    buckets = [DayActivity(date=today - offset * DAY_MS) for offset in range(days - 1, -1, -1)]
    first = buckets[0].date
    for event in events:
        index = (event.created_at - first) // DAY_MS
        if 0 <= index < days:
            buckets[index].count += 1
    return buckets


def member_productivity(project: Project, tasks: Iterable[Task],
                        users: Dict[str, User]) -> List[MemberProductivity]:
    """Completed-task count per member, in project member order."""
    completed: Dict[str, int] = {}
    for task in tasks:
        if task.status == TaskStatus.COMPLETED and task.assignee_id:
            completed[task.assignee_id] = completed.get(task.assignee_id, 0) + 1

    rows = []
    for user_id in project.member_ids:
        user = users.get(user_id)
        rows.append(MemberProductivity(
            user_id=user_id,
            name=user.display_name if user else "Unknown",
            role=user.role if user else "member",
            completed_tasks=completed.get(user_id, 0),
        ))
    return rows


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Aggregations
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def compute_project_analytics(
    project: Project,
    tasks: List[Task],
    comments: List[Comment],
    events: List[ActivityEvent],
    users: Dict[str, User],
    now: int,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> ProjectAnalytics:
    """Analytics for one project from a snapshot of its entities."""
    tasks = [t for t in tasks if t.project_id == project.project_id]
    task_ids = {t.task_id for t in tasks}
    events = filter_events(events, [project.project_id])
    window = window_days * DAY_MS

    return ProjectAnalytics(
        project_id=project.project_id,
        total_tasks=len(tasks),
        completion_rate=completion_rate(tasks),
        overdue_tasks=count_overdue(tasks, now),
        status_counts=status_counts(tasks),
        priority_counts=priority_counts(tasks),
        recent_activity_count=sum(1 for e in events if now - window <= e.created_at <= now),
        time_tracking=time_tracking(tasks),
        activity_by_day=activity_by_day(events, now),
        member_productivity=member_productivity(project, tasks, users),
        total_comments=sum(1 for c in comments if c.task_id in task_ids),
    )


def compute_user_dashboard(
    user_id: str,
    accessible_tasks: List[Task],
    accessible_projects: List[Project],
    events: List[ActivityEvent],
    now: int,
    window_days: int = DEFAULT_WINDOW_DAYS,
    upcoming_limit: int = UPCOMING_LIMIT,
    activity_limit: Optional[int] = RECENT_ACTIVITY_LIMIT,
) -> UserDashboard:
    """Cross-project personal dashboard for user_id."""
    projects = [p for p in accessible_projects if p.is_member(user_id)]
    project_ids = list(dict.fromkeys(p.project_id for p in projects))
    allowed = set(project_ids)
    mine = [t for t in accessible_tasks if t.assignee_id == user_id and t.project_id in allowed]
    window = window_days * DAY_MS

    upcoming = sorted(
        (t for t in mine if t.due_date is not None and t.status != TaskStatus.COMPLETED),
        key=lambda t: t.due_date,
    )

    return UserDashboard(
        user_id=user_id,
        total_projects=len(project_ids),
        total_assigned_tasks=len(mine),
        overdue_tasks=count_overdue(mine, now),
        tasks_due_this_week=sum(
            1 for t in mine if t.due_date is not None and now <= t.due_date < now + window
        ),
        my_task_status=status_counts(mine),
        upcoming_tasks=upcoming[:upcoming_limit],
        recent_activity=build_feed(events, projects, activity_limit),
    )
