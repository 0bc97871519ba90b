"""Celery application configuration for Replyscope Worker."""

import os

from celery import Celery
from celery.signals import setup_logging

from replyscope_core.config import get_settings

# Celery configuration from environment
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

app = Celery(
    "replyscope_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "replyscope_worker.tasks.reports",
        "replyscope_worker.tasks.evaluation",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds); an actor run can take several minutes
    task_soft_time_limit=600,
    task_time_limit=900,
    # Retry settings
    task_default_retry_delay=15,
    # Queue routing
    task_routes={
        "reports.*": {"queue": "reports"},
        "replies.*": {"queue": "evaluation"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=5,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Recurring scrape dispatch for active reports
    "poll-active-reports": {
        "task": "reports.poll_active",
        "schedule": get_settings().poll_interval_seconds,
        "args": (),
    },
}


@setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use the structured JSON logging of the core package."""
    from replyscope_core.observability.logging import configure_logging

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="replyscope-worker",
    )


if __name__ == "__main__":
    app.start()
