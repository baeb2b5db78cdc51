"""
Kanban engine: status grouping and status/creation rules for tasks.

Everything here is pure. Functions take the prior state and return the
next state together with the ActivityEvent that records it; persisting
both is the caller's job (see service.py).
"""
import dataclasses
import math
import numbers
from typing import Dict, List, Optional, Tuple, Any

from .errors import InvalidTransition, ValidationError
from .schema import (
    ActivityEvent,
    Project,
    Task,
    TaskInput,
    TaskPriority,
    TaskStatus,
    UPDATABLE_FIELDS,
    new_id,
    now_ms,
)


def list_by_status(tasks: List[Task]) -> Dict[TaskStatus, List[Task]]:
    """
    Partition tasks into the four status buckets.

    Every bucket is present (possibly empty) and keeps the input order.
    """
    buckets: Dict[TaskStatus, List[Task]] = {status: [] for status in TaskStatus}
    for task in tasks:
        buckets[task.status].append(task)
    return buckets


def board_to_dict(buckets: Dict[TaskStatus, List[Task]]) -> Dict[str, List[Dict[str, Any]]]:
    return {status.value: [t.to_dict() for t in items] for status, items in buckets.items()}


def make_event(project_id: str, description: str, actor_id: Optional[str] = None,
               task_id: Optional[str] = None, now: Optional[int] = None) -> ActivityEvent:
    return ActivityEvent(
        event_id=new_id("evt"),
        project_id=project_id,
        task_id=task_id,
        actor_id=actor_id,
        description=description,
        created_at=now if now is not None else now_ms(),
    )


def parse_status(value) -> TaskStatus:
    try:
        return TaskStatus.parse(value)
    except ValueError:
        raise InvalidTransition(
            f"Invalid status: {value!r} (expected one of {[s.value for s in TaskStatus]})"
        )


def change_status(
    task: Task,
    new_status,
    actor_id: str,
    actor_name: Optional[str] = None,
    now: Optional[int] = None,
) -> Tuple[Task, ActivityEvent]:
    """
    Move a task to new_status.

    No workflow order is enforced: any status may follow any other,
    including the current one. Each call bumps updated_at and yields a
    fresh ActivityEvent. Raises InvalidTransition for unknown statuses.
    """
    status = parse_status(new_status)
    now = now if now is not None else now_ms()
    updated = dataclasses.replace(task, status=status, updated_at=now, tags=list(task.tags))
    event = make_event(
        task.project_id,
        f"{actor_name or actor_id} changed status of {task.title} to {status.value}",
        actor_id=actor_id,
        task_id=task.task_id,
        now=now,
    )
    return updated, event


# ── Field validation (shared by create and update) ───────────────────────────

def _clean_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required")
    return title.strip()


def _clean_hours(name: str, value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite")
    if value < 0:
        raise ValidationError(f"{name} must be non-negative")
    return float(value)


def _clean_due_date(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError("due_date must be epoch milliseconds")
    if not math.isfinite(value):
        raise ValidationError("due_date must be finite")
    return int(value)


def _clean_priority(value) -> TaskPriority:
    if value is None:
        return TaskPriority.MEDIUM
    try:
        return TaskPriority.parse(value)
    except ValueError:
        raise ValidationError(f"Invalid priority: {value!r}")


def _clean_assignee(project: Project, assignee_id) -> Optional[str]:
    if not assignee_id:
        return None
    if not project.is_member(assignee_id):
        raise ValidationError(f"Assignee {assignee_id} is not a member of project {project.project_id}")
    return assignee_id


def _clean_tags(tags) -> List[str]:
    if tags is None:
        return []
    if isinstance(tags, str) or not isinstance(tags, (list, tuple, set)):
        raise ValidationError("tags must be a list of strings")
    cleaned = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("tags must be a list of strings")
        tag = tag.strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def _clean_description(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("description must be a string")
    return value or None


def create_task(
    data: TaskInput,
    project: Project,
    actor_id: str,
    actor_name: Optional[str] = None,
    now: Optional[int] = None,
) -> Tuple[Task, ActivityEvent]:
    """
    Build a new task for project from data.

    Raises ValidationError before anything is produced, so a rejected
    input yields neither a task nor an event.
    """
    title = _clean_title(data.title)
    status = parse_status(data.status) if data.status is not None else TaskStatus.TODO
    now = now if now is not None else now_ms()

    task = Task(
        task_id=new_id("task"),
        project_id=project.project_id,
        title=title,
        description=_clean_description(data.description),
        status=status,
        priority=_clean_priority(data.priority),
        assignee_id=_clean_assignee(project, data.assignee_id),
        due_date=_clean_due_date(data.due_date),
        estimated_hours=_clean_hours("estimated_hours", data.estimated_hours),
        actual_hours=_clean_hours("actual_hours", data.actual_hours),
        tags=_clean_tags(data.tags),
        creator_id=actor_id,
        created_at=now,
        updated_at=now,
    )
    event = make_event(
        project.project_id,
        f"{actor_name or actor_id} created task {title}",
        actor_id=actor_id,
        task_id=task.task_id,
        now=now,
    )
    return task, event


def update_task(
    task: Task,
    fields: Dict[str, Any],
    project: Project,
    actor_id: str,
    actor_name: Optional[str] = None,
    now: Optional[int] = None,
) -> Tuple[Task, ActivityEvent]:
    """Apply a partial field update (status excluded) with creation's rules."""
    cleaners = {
        "title": _clean_title,
        "description": _clean_description,
        "priority": _clean_priority,
        "assignee_id": lambda v: _clean_assignee(project, v),
        "due_date": _clean_due_date,
        "estimated_hours": lambda v: _clean_hours("estimated_hours", v),
        "actual_hours": lambda v: _clean_hours("actual_hours", v),
        "tags": _clean_tags,
    }
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {sorted(unknown)}")
    if not fields:
        raise ValidationError("No fields to update")

    changes = {name: cleaners[name](value) for name, value in fields.items()}
    now = now if now is not None else now_ms()
    updated = dataclasses.replace(task, updated_at=now, **changes)
    event = make_event(
        task.project_id,
        f"{actor_name or actor_id} updated task {updated.title}",
        actor_id=actor_id,
        task_id=task.task_id,
        now=now,
    )
    return updated, event
