"""
Activity feed: filter and order append-only activity events.

No deduplication and no merging. Truncation is left to callers (the
dashboard keeps 5, the project activity view keeps everything).
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Any

from .schema import ActivityEvent, Project


@dataclass(frozen=True)
class FeedItem:
    """An activity event annotated with its project's name."""
    event: ActivityEvent
    project_name: str

    def to_dict(self) -> Dict[str, Any]:
        data = self.event.to_dict()
        data["project_name"] = self.project_name
        return data


def filter_events(events: Iterable[ActivityEvent], project_ids: Iterable[str]) -> List[ActivityEvent]:
    """Events belonging to project_ids, most recent first (ties keep input order)."""
    allowed = set(project_ids)
    selected = [e for e in events if e.project_id in allowed]
    selected.sort(key=lambda e: e.created_at, reverse=True)
    return selected


def annotate(events: Iterable[ActivityEvent], projects: Iterable[Project]) -> List[FeedItem]:
    names = {p.project_id: p.name for p in projects}
    return [FeedItem(event=e, project_name=names.get(e.project_id, "")) for e in events]


def build_feed(
    events: Iterable[ActivityEvent],
    projects: List[Project],
    limit: Optional[int] = None,
) -> List[FeedItem]:
    """Annotated feed across projects, optionally truncated to limit."""
    ordered = filter_events(events, [p.project_id for p in projects])
    if limit is not None:
        ordered = ordered[:limit]
    return annotate(ordered, projects)
