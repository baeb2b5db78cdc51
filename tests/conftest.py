"""Shared test fixtures for TaskFlow tests."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure the project root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskflow.config import Config
from taskflow.schema import Project, Task, User, DAY_MS
from taskflow.service import TaskflowService
from taskflow.store import EntityStore

# Wednesday 2026-03-11 15:30 UTC
NOW = int(datetime(2026, 3, 11, 15, 30, tzinfo=timezone.utc).timestamp() * 1000)
HOUR_MS = 60 * 60 * 1000


def make_task(task_id: str = "t1", project_id: str = "p1", **kwargs) -> Task:
    """Task with fixed timestamps; override any field via kwargs."""
    kwargs.setdefault("title", f"Task {task_id}")
    kwargs.setdefault("created_at", NOW - 10 * DAY_MS)
    kwargs.setdefault("updated_at", NOW - 10 * DAY_MS)
    return Task(task_id=task_id, project_id=project_id, **kwargs)


class FakeClock:
    """Settable clock returning epoch ms."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


@pytest.fixture
def store(tmp_path):
    return EntityStore(str(tmp_path / "taskflow.db"))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(store, clock):
    return TaskflowService(store, config=Config(db_path=store.db_path), clock=clock)


@pytest.fixture
def team(service):
    """Three registered users: alice (owner), bob, carol."""
    return {
        "alice": service.register_user("Alice", "alice@example.com", role="admin", user_id="u-alice"),
        "bob": service.register_user("Bob", "bob@example.com", user_id="u-bob"),
        "carol": service.register_user("Carol", "carol@example.com", user_id="u-carol"),
    }


@pytest.fixture
def project(service, team) -> Project:
    """Project owned by alice with bob as a member (carol is an outsider)."""
    proj = service.create_project("Apollo", "Launch tracker", "u-alice")
    return service.add_project_member(proj.project_id, "u-bob", "u-alice")
