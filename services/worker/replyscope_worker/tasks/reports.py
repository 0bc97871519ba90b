"""Report scrape tasks.

Each scrape instance runs the checkpointed workflow for one report:
setup, scrape, filter/insert, progress, fan-out and continuation. The
Celery task ID doubles as the workflow instance ID, so a retried task
resumes from the last completed step instead of starting over.

Instances are admitted through a shared concurrency gate. When every
slot is taken the task is requeued with a delay rather than blocking a
worker process.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any

from replyscope_worker.celery_app import app
from replyscope_worker.util.retry import SLOT_REQUEUE, STEP_RETRY, countdown_for

logger = logging.getLogger(__name__)


def _run_scrape(task, report_id: int, conversation_id: str, trigger: str) -> dict[str, Any]:
    """Run one scrape instance inside a concurrency slot."""
    # Import here to avoid circular imports
    from replyscope_core.config import get_settings
    from replyscope_core.domain.errors import PermanentWorkflowError, TransientInfraError
    from replyscope_core.domain.services.checkpoints import StepCheckpointer
    from replyscope_core.domain.services.events import get_event_bus
    from replyscope_core.domain.services.scrape_orchestrator import (
        WORKFLOW_NAMES,
        ScrapeOrchestrator,
    )
    from replyscope_core.domain.services.title import get_title_generator
    from replyscope_core.infra.db import get_sync_session_factory
    from replyscope_core.infrastructure.concurrency import get_workflow_slots
    from replyscope_core.providers.x.adapter import get_scrape_client

    settings = get_settings()
    slots = get_workflow_slots()
    instance_id = task.request.id or str(uuid.uuid4())

    if not slots.acquire(instance_id):
        countdown = countdown_for(task.request.retries + 1, SLOT_REQUEUE)
        logger.info(
            f"No free scrape slot for report {report_id}; requeueing in {countdown}s"
        )
        raise task.retry(countdown=countdown)

    session = get_sync_session_factory()()

    try:
        checkpoints = StepCheckpointer(
            db=session,
            instance_id=instance_id,
            workflow=WORKFLOW_NAMES[trigger],
            report_id=report_id,
            max_retries=settings.workflow_step_max_retries,
        )
        orchestrator = ScrapeOrchestrator(
            db=session,
            scrape_client=get_scrape_client(),
            title_generator=get_title_generator(),
            event_bus=get_event_bus(),
            checkpoints=checkpoints,
            settings=settings,
        )
        return orchestrator.run(report_id, conversation_id, trigger)

    except TransientInfraError as exc:
        if not exc.exhausted:
            countdown = countdown_for(exc.attempts, STEP_RETRY)
            logger.warning(
                f"Step {exc.step} failed for report {report_id} "
                f"(attempt {exc.attempts}); retrying in {countdown}s: {exc}"
            )
            raise task.retry(exc=exc, countdown=countdown)
        return _fail_report(session, report_id, instance_id, exc)

    except PermanentWorkflowError as exc:
        return _fail_report(session, report_id, instance_id, exc)

    finally:
        session.close()
        slots.release(instance_id)


def _fail_report(session, report_id: int, instance_id: str, exc) -> dict:
    """Move the report to failed and describe the failure."""
    from replyscope_core.domain.services.progress import ProgressTracker

    logger.error(f"Scrape workflow {instance_id} failed for report {report_id}: {exc}")
    session.rollback()
    ProgressTracker(session).mark_failed(report_id, reason=str(exc))
    session.commit()
    return {
        "status": "failed",
        "report_id": report_id,
        "instance_id": instance_id,
        "step": getattr(exc, "step", None),
        "error": str(exc),
    }


@app.task(
    bind=True,
    name="reports.initial_scrape",
    max_retries=None,  # Per-step attempts are bounded by the checkpoint ledger
)
def initial_scrape(self, report_id: int, conversation_id: str) -> dict:
    """First scrape of a newly created report.

    Args:
        report_id: The report ID.
        conversation_id: The X conversation (post) ID.

    Returns:
        Dictionary with status and per-run counts.
    """
    from replyscope_core.domain.services.scrape_orchestrator import TRIGGER_CREATED

    return _run_scrape(self, report_id, conversation_id, TRIGGER_CREATED)


@app.task(
    bind=True,
    name="reports.recurring_scrape",
    max_retries=None,
)
def recurring_scrape(self, report_id: int, conversation_id: str) -> dict:
    """Incremental scrape that continues from the report's newest reply."""
    from replyscope_core.domain.services.scrape_orchestrator import TRIGGER_RECURRING

    return _run_scrape(self, report_id, conversation_id, TRIGGER_RECURRING)


@app.task(
    bind=True,
    name="reports.poll_active",
    max_retries=3,
    default_retry_delay=60,
)
def poll_active_reports(self) -> dict:
    """Dispatch recurring scrapes for every active report.

    Reports older than the monitoring window are closed instead, and
    reports with no recent activity are logged as stalled.

    Returns:
        Dictionary with dispatch, timeout and stall counts.
    """
    from replyscope_core.config import get_settings
    from replyscope_core.domain.models import utcnow
    from replyscope_core.domain.services.events import (
        REPORT_SCRAPE_RECURRING,
        get_event_bus,
    )
    from replyscope_core.domain.services.progress import ProgressTracker
    from replyscope_core.infra.db import get_sync_session_factory

    settings = get_settings()
    session = get_sync_session_factory()()

    try:
        tracker = ProgressTracker(session)
        event_bus = get_event_bus()
        now = utcnow()
        window = timedelta(hours=settings.report_monitor_hours)

        reports = tracker.list_active_reports()
        if not reports:
            logger.info("No active reports to poll")
            return {"status": "success", "dispatched": 0, "timed_out": 0, "stalled": 0}

        dispatched = 0
        timed_out = 0
        for report in reports:
            if report.created_at <= now - window:
                if tracker.close_monitoring_window(report.id):
                    timed_out += 1
                continue
            event_bus.emit(
                REPORT_SCRAPE_RECURRING,
                {"report_id": report.id, "conversation_id": report.conversation_id},
            )
            dispatched += 1

        stalled = tracker.list_stalled_reports(
            idle_for=timedelta(minutes=settings.report_stall_minutes),
            now=now,
        )
        for report in stalled:
            logger.warning(
                f"Report {report.id} has had no activity for "
                f"{settings.report_stall_minutes} minutes (status {report.status})"
            )

        session.commit()
        logger.info(
            f"Polled {len(reports)} active reports: {dispatched} dispatched, "
            f"{timed_out} closed"
        )
        return {
            "status": "success",
            "dispatched": dispatched,
            "timed_out": timed_out,
            "stalled": len(stalled),
        }

    except Exception as exc:
        session.rollback()
        logger.error(f"Failed to poll active reports: {exc}", exc_info=True)
        raise self.retry(exc=exc)

    finally:
        session.close()


__all__ = [
    "initial_scrape",
    "recurring_scrape",
    "poll_active_reports",
]
