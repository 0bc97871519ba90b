"""Named workflow events mapped onto Celery tasks.

Producers emit events by name; the bus resolves the task and queue and
enqueues it. Delivery is at-least-once, so every consumer must be idempotent.
"""

import logging
from typing import Any, Iterable, Optional

from celery import Celery

from replyscope_core.config import get_settings

logger = logging.getLogger(__name__)

REPORT_CREATED = "report.created"
REPORT_SCRAPE_RECURRING = "report.scrape.recurring"
REPLY_EVALUATE = "reply.evaluate"

# event name -> (task name, queue)
EVENT_ROUTES: dict[str, tuple[str, str]] = {
    REPORT_CREATED: ("reports.initial_scrape", "reports"),
    REPORT_SCRAPE_RECURRING: ("reports.recurring_scrape", "reports"),
    REPLY_EVALUATE: ("replies.evaluate", "evaluation"),
}


class UnknownEventError(ValueError):
    """Raised when emitting an event with no route."""

    pass


class EventBus:
    """Enqueues Celery tasks for named events."""

    def __init__(self, celery_app: Optional[Celery] = None):
        """Initialize the event bus.

        Args:
            celery_app: Celery app used to send tasks. Built from settings
                on first use when omitted.
        """
        self._celery_app = celery_app

    @property
    def celery_app(self) -> Celery:
        if self._celery_app is None:
            settings = get_settings()
            self._celery_app = Celery(
                "replyscope",
                broker=settings.celery_broker_url,
                backend=settings.celery_result_backend,
            )
        return self._celery_app

    def emit(self, name: str, data: dict[str, Any]) -> Optional[str]:
        """Emit one event.

        Args:
            name: Event name (see EVENT_ROUTES).
            data: Task keyword arguments.

        Returns:
            The enqueued task id.
        """
        if name not in EVENT_ROUTES:
            raise UnknownEventError(f"No route for event: {name}")

        task_name, queue = EVENT_ROUTES[name]
        result = self.celery_app.send_task(task_name, kwargs=data, queue=queue)

        logger.debug(
            "Event emitted",
            extra={"event": name, "task": task_name, "queue": queue},
        )
        return getattr(result, "id", None)

    def emit_many(self, name: str, payloads: Iterable[dict[str, Any]]) -> int:
        """Emit one event per payload. Returns the number emitted."""
        count = 0
        for data in payloads:
            self.emit(name, data)
            count += 1
        return count


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


__all__ = [
    "REPORT_CREATED",
    "REPORT_SCRAPE_RECURRING",
    "REPLY_EVALUATE",
    "EVENT_ROUTES",
    "UnknownEventError",
    "EventBus",
    "get_event_bus",
]
