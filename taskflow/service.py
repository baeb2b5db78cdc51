"""
TaskFlow operations: the entry points a transport layer calls.

Every operation takes the caller's resolved user id explicitly. Reads
load a fresh snapshot from the store and recompute; writes validate
first, then persist the entity and its ActivityEvent together, then
publish a change notification.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from . import board, notify
from .config import Config
from .errors import NotAuthorized, NotFound, ValidationError
from .feed import FeedItem, build_feed
from .metrics import (
    ACTIVITY_DAYS,
    ProjectAnalytics,
    UserDashboard,
    compute_project_analytics,
    compute_user_dashboard,
)
from .notify import ChangeNotifier
from .schema import (
    DAY_MS,
    Comment,
    Project,
    Task,
    TaskInput,
    TaskStatus,
    User,
    new_id,
    now_ms,
    utc_day_start,
)
from .store import EntityStore

logger = logging.getLogger(__name__)


class TaskflowService:
    """Project, task and metrics operations over an EntityStore."""

    def __init__(
        self,
        store: EntityStore,
        notifier: Optional[ChangeNotifier] = None,
        config: Optional[Config] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.notifier = notifier or ChangeNotifier()
        self.config = config or Config()
        self.clock = clock

    # ──────────────────────────────────────────
    # Lookup helpers
    # ──────────────────────────────────────────

    def _project_for(self, project_id: str, caller_id: str) -> Project:
        """Load a project and check the caller belongs to it."""
        project = self.store.get_project(project_id)
        if not project:
            raise NotFound(f"Project {project_id} not found")
        if not project.is_member(caller_id):
            logger.warning(f"Rejected {caller_id}: not a member of project {project_id}")
            raise NotAuthorized(f"User {caller_id} is not a member of project {project_id}")
        return project

    def _task_for(self, task_id: str, caller_id: str):
        task = self.store.get_task(task_id)
        if not task:
            raise NotFound(f"Task {task_id} not found")
        project = self._project_for(task.project_id, caller_id)
        return task, project

    def _actor_name(self, user_id: str) -> str:
        user = self.store.get_user(user_id)
        return user.display_name if user else user_id

    # ──────────────────────────────────────────
    # Users
    # ──────────────────────────────────────────

    def register_user(self, name: str, email: str = "", role: str = "member",
                      user_id: Optional[str] = None) -> User:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name is required")
        for label, value in (("email", email), ("role", role), ("user_id", user_id)):
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{label} must be a string")
        user = User(user_id=user_id or new_id("user"), name=name.strip(),
                    email=email or "", role=role or "member")
        self.store.save_user(user)
        logger.info(f"Registered user {user.user_id} ({user.name})")
        return user

    def get_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    # ──────────────────────────────────────────
    # Projects
    # ──────────────────────────────────────────

    def create_project(self, name: str, description: str, caller_id: str) -> Project:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name is required")
        if description is not None and not isinstance(description, str):
            raise ValidationError("description must be a string")
        owner = self.get_user(caller_id)
        now = self.clock()
        project = Project(
            project_id=new_id("proj"),
            name=name.strip(),
            description=description or "",
            owner_id=owner.user_id,
            member_ids=[owner.user_id],
            created_at=now,
        )
        event = board.make_event(
            project.project_id,
            f"{owner.display_name} created project {project.name}",
            actor_id=owner.user_id,
            now=now,
        )
        self.store.save_project(project, [event])
        logger.info(f"Created project {project.project_id} for {owner.user_id}")
        self.notifier.publish(notify.PROJECT_CREATED, project.project_id)
        return project

    def add_project_member(self, project_id: str, user_id: str, caller_id: str) -> Project:
        project = self._project_for(project_id, caller_id)
        user = self.get_user(user_id)
        if project.is_member(user.user_id):
            return project

        project.member_ids.append(user.user_id)
        event = board.make_event(
            project.project_id,
            f"{self._actor_name(caller_id)} added {user.display_name} to the project",
            actor_id=caller_id,
            now=self.clock(),
        )
        self.store.save_project(project, [event])
        logger.info(f"Added {user.user_id} to project {project_id}")
        self.notifier.publish(notify.PROJECT_UPDATED, project.project_id)
        return project

    def get_user_projects(self, caller_id: str) -> List[Project]:
        return self.store.list_projects_for_user(caller_id)

    def get_project(self, project_id: str, caller_id: str) -> Dict[str, Any]:
        """Project with its members resolved to user records."""
        project = self._project_for(project_id, caller_id)
        users = self.store.get_users(project.member_ids)
        data = project.to_dict()
        data["members"] = [users[uid].to_dict() for uid in project.member_ids if uid in users]
        return data

    # ──────────────────────────────────────────
    # Tasks and the board
    # ──────────────────────────────────────────

    def create_task(self, data: TaskInput, caller_id: str) -> Task:
        project = self._project_for(data.project_id, caller_id)
        task, event = board.create_task(
            data, project, caller_id, self._actor_name(caller_id), now=self.clock()
        )
        self.store.save_task(task, [event])
        logger.info(f"Created task {task.task_id} in project {project.project_id}")
        self.notifier.publish(notify.TASK_CREATED, project.project_id, task_id=task.task_id)
        return task

    def update_task_status(self, task_id: str, new_status, caller_id: str) -> Task:
        task, _ = self._task_for(task_id, caller_id)
        updated, event = board.change_status(
            task, new_status, caller_id, self._actor_name(caller_id), now=self.clock()
        )
        self.store.save_task(updated, [event])
        logger.info(f"Task {task_id}: {task.status.value} -> {updated.status.value}")
        self.notifier.publish(notify.TASK_UPDATED, updated.project_id, task_id=task_id)
        return updated

    def update_task(self, task_id: str, fields: Dict[str, Any], caller_id: str) -> Task:
        """
        Partial update. A `status` key is applied through the board's
        status change, so it records its own ActivityEvent.
        """
        task, project = self._task_for(task_id, caller_id)
        fields = dict(fields)
        new_status = fields.pop("status", None)
        actor = self._actor_name(caller_id)
        now = self.clock()

        events = []
        if fields:
            task, event = board.update_task(task, fields, project, caller_id, actor, now=now)
            events.append(event)
        if new_status is not None:
            task, event = board.change_status(task, new_status, caller_id, actor, now=now)
            events.append(event)
        if not events:
            raise ValidationError("No fields to update")

        self.store.save_task(task, events)
        logger.info(f"Updated task {task_id} ({len(events)} change(s))")
        self.notifier.publish(notify.TASK_UPDATED, task.project_id, task_id=task_id)
        return task

    def list_project_tasks_by_status(self, project_id: str, caller_id: str) -> Dict[TaskStatus, List[Task]]:
        project = self._project_for(project_id, caller_id)
        return board.list_by_status(self.store.list_tasks_by_project(project.project_id))

    def get_project_tasks(self, project_id: str, caller_id: str) -> List[Dict[str, Any]]:
        """Tasks as board cards: assignee resolved, comment count attached."""
        project = self._project_for(project_id, caller_id)
        tasks = self.store.list_tasks_by_project(project.project_id)
        users = self.store.get_users(t.assignee_id for t in tasks)
        comment_counts: Dict[str, int] = {}
        for comment in self.store.list_comments_by_project(project.project_id):
            comment_counts[comment.task_id] = comment_counts.get(comment.task_id, 0) + 1

        now = self.clock()
        cards = []
        for task in tasks:
            card = task.to_dict()
            assignee = users.get(task.assignee_id)
            card["assignee"] = assignee.to_dict() if assignee else None
            card["comments_count"] = comment_counts.get(task.task_id, 0)
            card["is_overdue"] = task.is_overdue(now)
            cards.append(card)
        return cards

    # ──────────────────────────────────────────
    # Comments
    # ──────────────────────────────────────────

    def add_comment(self, task_id: str, body: str, caller_id: str) -> Comment:
        if not isinstance(body, str) or not body.strip():
            raise ValidationError("body is required")
        task, _ = self._task_for(task_id, caller_id)
        now = self.clock()
        comment = Comment(
            comment_id=new_id("cmt"),
            task_id=task.task_id,
            author_id=caller_id,
            body=body.strip(),
            created_at=now,
        )
        event = board.make_event(
            task.project_id,
            f"{self._actor_name(caller_id)} commented on {task.title}",
            actor_id=caller_id,
            task_id=task.task_id,
            now=now,
        )
        self.store.save_comment(comment, [event])
        self.notifier.publish(notify.COMMENT_ADDED, task.project_id, task_id=task.task_id)
        return comment

    def list_comments(self, task_id: str, caller_id: str) -> List[Comment]:
        task, _ = self._task_for(task_id, caller_id)
        return self.store.list_comments_by_task(task.task_id)

    # ──────────────────────────────────────────
    # Derived views
    # ──────────────────────────────────────────

    def get_project_analytics(self, project_id: str, caller_id: str) -> ProjectAnalytics:
        project = self._project_for(project_id, caller_id)
        now = self.clock()
        days = self.config.window_days
        # Oldest instant either window can look at
        since = min(now - days * DAY_MS, utc_day_start(now) - (ACTIVITY_DAYS - 1) * DAY_MS)
        return compute_project_analytics(
            project,
            self.store.list_tasks_by_project(project.project_id),
            self.store.list_comments_by_project(project.project_id),
            self.store.list_events([project.project_id], since=since),
            self.store.get_users(project.member_ids),
            now,
            window_days=days,
        )

    def get_user_dashboard(self, caller_id: str) -> UserDashboard:
        projects = self.store.list_projects_for_user(caller_id)
        project_ids = [p.project_id for p in projects]
        limit = self.config.recent_activity_limit
        return compute_user_dashboard(
            caller_id,
            self.store.list_tasks_by_assignee(caller_id, project_ids),
            projects,
            self.store.list_events(project_ids, limit=limit),
            self.clock(),
            window_days=self.config.window_days,
            upcoming_limit=self.config.upcoming_limit,
            activity_limit=limit,
        )

    def get_project_activity(self, project_id: str, caller_id: str,
                             limit: Optional[int] = None) -> List[FeedItem]:
        project = self._project_for(project_id, caller_id)
        return build_feed(self.store.list_events([project.project_id], limit=limit), [project], limit)
