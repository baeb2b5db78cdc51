"""
Entity store backend (SQLite).

Durable storage for users, projects, tasks, comments and activity events,
with indexed lookups by project, by assignee and by time range. Every
write that carries an ActivityEvent commits both rows in one transaction,
so a failed write never leaves an orphan event behind.
"""
import sqlite3
import json
import logging
from pathlib import Path
from typing import List, Optional, Dict, Iterable
from .schema import User, Project, Task, Comment, ActivityEvent

logger = logging.getLogger(__name__)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def _placeholders(values: list) -> str:
    return ",".join("?" for _ in values)


class EntityStore:
    """SQLite-backed store for TaskFlow entities."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskflow" / "taskflow.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT DEFAULT '',
                    role TEXT DEFAULT 'member'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    project_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    owner_id TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)
            # id gives the stable member order (owner first)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS project_members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    UNIQUE (project_id, user_id),
                    FOREIGN KEY (project_id) REFERENCES projects(project_id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'todo',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    assignee_id TEXT,
                    due_date INTEGER,
                    estimated_hours REAL,
                    actual_hours REAL,
                    tags TEXT,  -- JSON list
                    creator_id TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects(project_id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    comment_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    author_id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    FOREIGN KEY (task_id) REFERENCES tasks(task_id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS activity_events (
                    event_id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    task_id TEXT,
                    actor_id TEXT,
                    description TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_members_user ON project_members(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_comments_task ON comments(task_id)")
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_project_time
                ON activity_events(project_id, created_at)
            """)
            conn.commit()

    # ── Writes ───────────────────────────────────────────────────────────

    def _insert_events(self, conn: sqlite3.Connection, events: Iterable[ActivityEvent]) -> None:
        for event in events:
            conn.execute(
                "INSERT INTO activity_events (event_id, project_id, task_id, actor_id, description, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (event.event_id, event.project_id, event.task_id, event.actor_id,
                 event.description, event.created_at),
            )

    def save_user(self, user: User) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO users (user_id, name, email, role) VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    name=excluded.name, email=excluded.email, role=excluded.role
            """, (user.user_id, user.name, user.email, user.role))
            conn.commit()

    def save_project(self, project: Project, events: Iterable[ActivityEvent] = ()) -> None:
        """Insert or update a project and append any new members in list order."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO projects (project_id, name, description, owner_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(project_id) DO UPDATE SET
                    name=excluded.name, description=excluded.description
            """, (project.project_id, project.name, project.description,
                  project.owner_id, project.created_at))
            for user_id in project.member_ids:
                conn.execute(
                    "INSERT OR IGNORE INTO project_members (project_id, user_id) VALUES (?, ?)",
                    (project.project_id, user_id),
                )
            self._insert_events(conn, events)
            conn.commit()
        logger.debug(f"Saved project {project.project_id}")

    def save_task(self, task: Task, events: Iterable[ActivityEvent] = ()) -> None:
        """Upsert a task (rowid preserved, so board order survives updates)."""
        data = task.to_dict()
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO tasks
                (task_id, project_id, title, description, status, priority,
                 assignee_id, due_date, estimated_hours, actual_hours, tags,
                 creator_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(task_id) DO UPDATE SET
                    title=excluded.title,
                    description=excluded.description,
                    status=excluded.status,
                    priority=excluded.priority,
                    assignee_id=excluded.assignee_id,
                    due_date=excluded.due_date,
                    estimated_hours=excluded.estimated_hours,
                    actual_hours=excluded.actual_hours,
                    tags=excluded.tags,
                    updated_at=excluded.updated_at
            """, (
                data["task_id"],
                data["project_id"],
                data["title"],
                data["description"],
                data["status"],
                data["priority"],
                data["assignee_id"],
                data["due_date"],
                data["estimated_hours"],
                data["actual_hours"],
                json.dumps(data["tags"]),
                data["creator_id"],
                data["created_at"],
                data["updated_at"],
            ))
            self._insert_events(conn, events)
            conn.commit()
        logger.debug(f"Saved task {task.task_id} ({task.status.value})")

    def save_comment(self, comment: Comment, events: Iterable[ActivityEvent] = ()) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO comments (comment_id, task_id, author_id, body, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (comment.comment_id, comment.task_id, comment.author_id,
                 comment.body, comment.created_at),
            )
            self._insert_events(conn, events)
            conn.commit()

    # ── Reads ────────────────────────────────────────────────────────────

    def get_user(self, user_id: str) -> Optional[User]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,)
            ).fetchone()
        return User(**dict(row)) if row else None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Batch lookup; unknown ids are simply absent from the result."""
        ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not ids:
            return {}
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT * FROM users WHERE user_id IN ({_placeholders(ids)})", ids
            ).fetchall()
        return {row["user_id"]: User(**dict(row)) for row in rows}

    def _member_ids(self, conn: sqlite3.Connection, project_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT user_id FROM project_members WHERE project_id = ? ORDER BY id ASC",
            (project_id,),
        ).fetchall()
        return [r["user_id"] for r in rows]

    def _row_to_project(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Project:
        data = dict(row)
        return Project(
            project_id=data["project_id"],
            name=data["name"],
            description=data.get("description") or "",
            owner_id=data["owner_id"],
            member_ids=self._member_ids(conn, data["project_id"]),
            created_at=data["created_at"],
        )

    def get_project(self, project_id: str) -> Optional[Project]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE project_id = ?", (project_id,)
            ).fetchone()
            if not row:
                return None
            return self._row_to_project(conn, row)

    def list_projects_for_user(self, user_id: str) -> List[Project]:
        """Projects the user is a member of (newest first)."""
        with _connect(self.db_path) as conn:
            rows = conn.execute("""
                SELECT p.* FROM projects p
                JOIN project_members m ON m.project_id = p.project_id
                WHERE m.user_id = ?
                ORDER BY p.created_at DESC, p.rowid DESC
            """, (user_id,)).fetchall()
            return [self._row_to_project(conn, row) for row in rows]

    def get_task(self, task_id: str) -> Optional[Task]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE task_id = ?", (task_id,)
            ).fetchone()
        return Task.from_dict(dict(row)) if row else None

    def list_tasks_by_project(self, project_id: str) -> List[Task]:
        """All tasks of a project, in insertion order."""
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE project_id = ? ORDER BY rowid ASC",
                (project_id,),
            ).fetchall()
        return [Task.from_dict(dict(row)) for row in rows]

    def list_tasks_by_assignee(self, user_id: str, project_ids: Optional[List[str]] = None) -> List[Task]:
        """Tasks assigned to a user, optionally restricted to a project set."""
        sql = "SELECT * FROM tasks WHERE assignee_id = ?"
        params: list = [user_id]
        if project_ids is not None:
            if not project_ids:
                return []
            sql += f" AND project_id IN ({_placeholders(project_ids)})"
            params.extend(project_ids)
        sql += " ORDER BY rowid ASC"
        with _connect(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Task.from_dict(dict(row)) for row in rows]

    def list_comments_by_project(self, project_id: str) -> List[Comment]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("""
                SELECT c.* FROM comments c
                JOIN tasks t ON t.task_id = c.task_id
                WHERE t.project_id = ?
                ORDER BY c.created_at ASC, c.rowid ASC
            """, (project_id,)).fetchall()
        return [Comment(**dict(row)) for row in rows]

    def list_comments_by_task(self, task_id: str) -> List[Comment]:
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM comments WHERE task_id = ? ORDER BY created_at ASC, rowid ASC",
                (task_id,),
            ).fetchall()
        return [Comment(**dict(row)) for row in rows]

    def list_events(
        self,
        project_ids: List[str],
        since: Optional[int] = None,
        until: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[ActivityEvent]:
        """Activity events for a project set, most recent first."""
        if not project_ids:
            return []
        sql = f"SELECT * FROM activity_events WHERE project_id IN ({_placeholders(project_ids)})"
        params: list = list(project_ids)
        if since is not None:
            sql += " AND created_at >= ?"
            params.append(since)
        if until is not None:
            sql += " AND created_at <= ?"
            params.append(until)
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with _connect(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [ActivityEvent(**dict(row)) for row in rows]

    def count(self, table: str) -> int:
        """Row count for one of the entity tables."""
        if table not in ("users", "projects", "project_members", "tasks", "comments", "activity_events"):
            raise ValueError(f"Unknown table: {table}")
        with _connect(self.db_path) as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
