"""
TaskFlow entity schema.

Task lifecycle:
  todo ⇄ in_progress ⇄ review ⇄ completed

Any status is reachable from any other. Each change bumps updated_at and
produces exactly one ActivityEvent. All timestamps are epoch milliseconds.
"""
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
import json
import time
import uuid

DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def utc_day_start(ms: int) -> int:
    """Start of the UTC calendar day containing ms."""
    return ms - (ms % DAY_MS)


def new_id(prefix: str) -> str:
    """Sortable unique id (ms timestamp + random hex)."""
    return f"{prefix}-{now_ms()}-{uuid.uuid4().hex[:8]}"


class TaskStatus(Enum):
    """Kanban columns, in board order."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value) -> "TaskStatus":
        """Strict lookup; raises ValueError for anything unrecognized."""
        if isinstance(value, cls):
            return value
        return cls(value)


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value) -> "TaskPriority":
        if isinstance(value, cls):
            return value
        return cls(value)


@dataclass
class User:
    user_id: str
    name: str
    email: str = ""
    role: str = "member"           # informational only

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.user_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
        }


@dataclass
class Project:
    """A project and its ordered member list (owner first)."""
    project_id: str
    name: str
    owner_id: str
    description: str = ""
    member_ids: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)

    def is_member(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id in self.member_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "member_ids": list(self.member_ids),
            "created_at": self.created_at,
        }


@dataclass
class Task:
    """A single card on a project's board."""

    # Identity (project_id is fixed at creation)
    task_id: str
    project_id: str
    title: str
    description: Optional[str] = None

    # Board state
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM

    # Assignment & scheduling
    assignee_id: Optional[str] = None
    due_date: Optional[int] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None

    # Metadata
    tags: List[str] = field(default_factory=list)
    creator_id: str = ""
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def is_overdue(self, now: int) -> bool:
        return (
            self.due_date is not None
            and self.due_date < now
            and self.status != TaskStatus.COMPLETED
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "assignee_id": self.assignee_id,
            "due_date": self.due_date,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "tags": list(self.tags),
            "creator_id": self.creator_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Deserialize from a dict or a store row."""
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = json.loads(tags)
        return cls(
            task_id=data["task_id"],
            project_id=data["project_id"],
            title=data["title"],
            description=data.get("description"),
            status=TaskStatus(data.get("status") or "todo"),
            priority=TaskPriority(data.get("priority") or "medium"),
            assignee_id=data.get("assignee_id"),
            due_date=data.get("due_date"),
            estimated_hours=data.get("estimated_hours"),
            actual_hours=data.get("actual_hours"),
            tags=list(tags),
            creator_id=data.get("creator_id") or "",
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )


@dataclass
class Comment:
    comment_id: str
    task_id: str
    author_id: str
    body: str
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comment_id": self.comment_id,
            "task_id": self.task_id,
            "author_id": self.author_id,
            "body": self.body,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ActivityEvent:
    """Append-only record of one mutating action."""
    event_id: str
    project_id: str
    description: str
    created_at: int
    task_id: Optional[str] = None
    actor_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "actor_id": self.actor_id,
            "description": self.description,
            "created_at": self.created_at,
        }


@dataclass
class TaskInput:
    """Fields accepted when creating a task. Absent means unset."""
    project_id: str
    title: str
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[str] = None
    due_date: Optional[int] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    tags: Optional[List[str]] = field(default_factory=list)  # raw; board validates the shape

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskInput":
        return cls(
            project_id=data.get("project_id", ""),
            title=data.get("title", ""),
            description=data.get("description") or None,
            status=data.get("status"),
            priority=data.get("priority"),
            assignee_id=data.get("assignee_id") or None,
            due_date=data.get("due_date"),
            estimated_hours=data.get("estimated_hours"),
            actual_hours=data.get("actual_hours"),
            tags=data.get("tags"),
        )


# Fields UpdateTask may touch (status goes through the board engine)
UPDATABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "assignee_id",
    "due_date",
    "estimated_hours",
    "actual_hours",
    "tags",
)
