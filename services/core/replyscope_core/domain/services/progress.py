"""Report progress tracking for Replyscope.

All counter and status writes are SQL-side conditional updates so that two
workflow instances working on the same report never overwrite each other:

- useful_count / qualified_count are incremented, never assigned
- status only moves forward (setting_up -> pending -> scraping -> completed),
  with failed reachable from any non-terminal state
- last_reply_at only moves forward in time
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session as DBSession

from replyscope_core.domain.errors import PermanentWorkflowError
from replyscope_core.domain.models import (
    EvaluationStatus,
    Reply,
    Report,
    ReportStatus,
    utcnow,
)
from replyscope_core.domain.services.activity import ActivityLogger

logger = logging.getLogger(__name__)


# =============================================================================
# STATUS ORDER
# =============================================================================

STATUS_ORDER = {
    ReportStatus.SETTING_UP: 0,
    ReportStatus.PENDING: 1,
    ReportStatus.SCRAPING: 2,
    ReportStatus.COMPLETED: 3,
}

TERMINAL_STATUSES = (ReportStatus.COMPLETED, ReportStatus.FAILED)
ACTIVE_STATUSES = (ReportStatus.SETTING_UP, ReportStatus.PENDING, ReportStatus.SCRAPING)


def statuses_before(status: str) -> list[str]:
    """Statuses a report may advance from to reach ``status``."""
    if status not in STATUS_ORDER:
        raise ValueError(f"Not a forward status: {status}")
    rank = STATUS_ORDER[status]
    return [name for name, order in STATUS_ORDER.items() if order < rank]


# =============================================================================
# SCRAPE CAP
# =============================================================================


@dataclass(frozen=True)
class ScrapeCapPolicy:
    """Hard limit on stored replies per report, relative to its threshold."""

    multiplier: int = 3

    def limit(self, threshold: int) -> int:
        return threshold * self.multiplier

    def reached(self, useful_count: int, threshold: int) -> bool:
        return useful_count >= self.limit(threshold)


# =============================================================================
# TRACKER
# =============================================================================


class ProgressTracker:
    """Updates report counters and status.

    Methods flush but do not commit; the caller owns the transaction.
    """

    def __init__(
        self,
        db: DBSession,
        activity: Optional[ActivityLogger] = None,
        cap_policy: Optional[ScrapeCapPolicy] = None,
    ):
        self.db = db
        self.activity = activity or ActivityLogger(db)
        self.cap_policy = cap_policy or ScrapeCapPolicy()

    def _get_report(self, report_id: int) -> Report:
        report = self.db.get(Report, report_id)
        if report is None:
            raise PermanentWorkflowError(f"Report {report_id} not found")
        self.db.refresh(report)
        return report

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def advance_status(self, report_id: int, status: str) -> bool:
        """Move a report forward to ``status``.

        Returns:
            True if the row changed, False if the report was already at or
            past ``status`` (or failed).
        """
        updated = (
            self.db.query(Report)
            .filter(
                Report.id == report_id,
                Report.status.in_(statuses_before(status)),
            )
            .update(
                {Report.status: status, Report.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        return updated > 0

    def mark_failed(self, report_id: int, reason: Optional[str] = None) -> bool:
        """Fail a non-terminal report."""
        updated = (
            self.db.query(Report)
            .filter(
                Report.id == report_id,
                Report.status.notin_(TERMINAL_STATUSES),
            )
            .update(
                {
                    Report.status: ReportStatus.FAILED,
                    Report.last_activity_at: utcnow(),
                    Report.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if updated:
            logger.warning(
                "Report marked failed",
                extra={"report_id": report_id, "reason": reason},
            )
        return updated > 0

    # -------------------------------------------------------------------------
    # Scrape progress
    # -------------------------------------------------------------------------

    def update_progress(
        self,
        report_id: int,
        inserted_count: int,
        threshold: int,
        last_reply_at: Optional[datetime] = None,
        last_reply_external_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Apply a batch's inserts to the report.

        Args:
            report_id: The report ID.
            inserted_count: Replies inserted by the batch.
            threshold: The report's reply threshold.
            last_reply_at: Newest reply timestamp seen by the batch.
            last_reply_external_id: External id of that reply.

        Returns:
            Dict with useful_count, qualified_count, status and
            reached_scrape_cap.
        """
        now = utcnow()

        self.db.query(Report).filter(Report.id == report_id).update(
            {
                Report.useful_count: Report.useful_count + inserted_count,
                Report.last_activity_at: now,
                Report.updated_at: now,
            },
            synchronize_session=False,
        )

        if last_reply_at is not None:
            self.db.query(Report).filter(
                Report.id == report_id,
                or_(Report.last_reply_at.is_(None), Report.last_reply_at < last_reply_at),
            ).update(
                {
                    Report.last_reply_at: last_reply_at,
                    Report.last_reply_external_id: last_reply_external_id,
                },
                synchronize_session=False,
            )

        report = self._get_report(report_id)

        target = (
            ReportStatus.COMPLETED
            if report.qualified_count >= threshold
            else ReportStatus.SCRAPING
        )
        if self.advance_status(report_id, target):
            self.db.refresh(report)

        useful_count = report.useful_count
        reached_cap = self.cap_policy.reached(useful_count, threshold)

        self.activity.append(
            report_id,
            "progress",
            f"Updated report counts ({min(useful_count, threshold)}/{threshold})",
            meta={"useful_count": useful_count, "reached_scrape_cap": reached_cap},
        )

        return {
            "useful_count": useful_count,
            "qualified_count": report.qualified_count,
            "status": report.status,
            "reached_scrape_cap": reached_cap,
        }

    # -------------------------------------------------------------------------
    # Evaluation outcomes
    # -------------------------------------------------------------------------

    def mark_evaluating(self, reply_id: int, report_id: int) -> bool:
        """Mark a pending reply as handed to the scorer."""
        updated = (
            self.db.query(Reply)
            .filter(
                Reply.id == reply_id,
                Reply.report_id == report_id,
                Reply.evaluation_status == EvaluationStatus.PENDING,
            )
            .update(
                {Reply.evaluation_status: EvaluationStatus.EVALUATING},
                synchronize_session=False,
            )
        )
        return updated > 0

    def record_evaluation(
        self,
        reply_id: int,
        report_id: int,
        included: bool,
    ) -> dict[str, Any]:
        """Record the outcome of a reply evaluation.

        Idempotent: a reply that is already evaluated is left untouched and
        the qualified count is not incremented again.

        Returns:
            Dict with recorded (bool), qualified_count and completed (bool).
        """
        updated = (
            self.db.query(Reply)
            .filter(
                Reply.id == reply_id,
                Reply.report_id == report_id,
                Reply.evaluation_status != EvaluationStatus.EVALUATED,
            )
            .update(
                {
                    Reply.evaluation_status: EvaluationStatus.EVALUATED,
                    Reply.to_be_included: included,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            return {"recorded": False, "qualified_count": None, "completed": False}

        if not included:
            return {"recorded": True, "qualified_count": None, "completed": False}

        now = utcnow()
        self.db.query(Report).filter(Report.id == report_id).update(
            {
                Report.qualified_count: Report.qualified_count + 1,
                Report.last_activity_at: now,
                Report.updated_at: now,
            },
            synchronize_session=False,
        )

        report = self._get_report(report_id)
        completed = False

        if report.qualified_count >= report.reply_threshold:
            completed = (
                self.db.query(Report)
                .filter(
                    Report.id == report_id,
                    Report.status == ReportStatus.SCRAPING,
                )
                .update(
                    {Report.status: ReportStatus.COMPLETED, Report.updated_at: now},
                    synchronize_session=False,
                )
                > 0
            )
            if completed:
                logger.info(
                    "Report reached its threshold",
                    extra={
                        "report_id": report_id,
                        "qualified_count": report.qualified_count,
                    },
                )
                self.activity.append(
                    report_id,
                    "complete",
                    "Target reached! Generating your summary...",
                    meta={"qualified_count": report.qualified_count},
                )

        return {
            "recorded": True,
            "qualified_count": report.qualified_count,
            "completed": completed,
        }

    # -------------------------------------------------------------------------
    # Queries for the poller
    # -------------------------------------------------------------------------

    def list_active_reports(self) -> list[Report]:
        """Reports still being set up or scraped."""
        return (
            self.db.query(Report)
            .filter(Report.status.in_(ACTIVE_STATUSES))
            .order_by(Report.id.asc())
            .all()
        )

    def list_stalled_reports(
        self,
        idle_for: timedelta,
        now: Optional[datetime] = None,
    ) -> list[Report]:
        """Active reports with no activity for at least ``idle_for``."""
        cutoff = (now or utcnow()) - idle_for
        return (
            self.db.query(Report)
            .filter(
                Report.status.in_(ACTIVE_STATUSES),
                or_(
                    Report.last_activity_at < cutoff,
                    Report.last_activity_at.is_(None) & (Report.created_at < cutoff),
                ),
            )
            .order_by(Report.id.asc())
            .all()
        )

    def close_monitoring_window(self, report_id: int) -> bool:
        """Complete an active report whose monitoring window elapsed."""
        updated = (
            self.db.query(Report)
            .filter(
                Report.id == report_id,
                Report.status.in_(ACTIVE_STATUSES),
            )
            .update(
                {
                    Report.status: ReportStatus.COMPLETED,
                    Report.last_activity_at: utcnow(),
                    Report.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if updated:
            self.activity.append(report_id, "complete", "Monitoring window ended")
        return updated > 0


__all__ = [
    "STATUS_ORDER",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    "statuses_before",
    "ScrapeCapPolicy",
    "ProgressTracker",
]
