"""Replyscope Worker Tasks."""

# Import all tasks to register them with Celery
from replyscope_worker.tasks import evaluation  # noqa: F401
from replyscope_worker.tasks import reports  # noqa: F401
