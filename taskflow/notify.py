"""
Change notifications: tells subscribers which project's data moved.

The core stays pull-based. A subscriber (a websocket fan-out, a cache,
a UI poller) receives the topic and project id and re-reads whatever
views it holds for that project.
"""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

# Topics published by TaskflowService
PROJECT_CREATED = "project_created"
PROJECT_UPDATED = "project_updated"
TASK_CREATED = "task_created"
TASK_UPDATED = "task_updated"
COMMENT_ADDED = "comment_added"

ALL = "*"


class ChangeNotifier:
    """Routes change notifications to registered callbacks."""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = {}  # topic -> callbacks

    def subscribe(self, topic: str, callback: Callable) -> None:
        """Register a callback for a topic, or ALL for every topic."""
        if topic not in self.subscribers:
            self.subscribers[topic] = []
        self.subscribers[topic].append(callback)

    def unsubscribe(self, topic: str, callback: Callable) -> None:
        callbacks = self.subscribers.get(topic, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, topic: str, project_id: str, **kwargs) -> None:
        """
        Deliver a notification after a committed change.

        A failing subscriber is logged and skipped; the change it reports
        is already durable and the other subscribers still run.
        """
        for callback in self.subscribers.get(topic, []) + self.subscribers.get(ALL, []):
            try:
                callback(topic=topic, project_id=project_id, **kwargs)
            except Exception as e:
                logger.error(f"Error in {topic} subscriber {callback!r}: {e}")
