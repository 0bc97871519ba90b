"""Report activity feed for Replyscope.

Activity entries narrate workflow progress for the report page. They are
append-only and best-effort: a failed write is logged and never fails the
caller, and entries are never used as the source of truth for counts.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from replyscope_core.domain.models import ReportActivity, utcnow

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 500


def pluralize_replies(count: int) -> str:
    """Return "reply" or "replies" for a count."""
    return "reply" if count == 1 else "replies"


class ActivityLogger:
    """Appends narration entries to a report's activity feed."""

    def __init__(self, db: DBSession):
        """Initialize the activity logger.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def append(
        self,
        report_id: int,
        key: str,
        message: str,
        meta: Optional[dict[str, Any]] = None,
    ) -> Optional[ReportActivity]:
        """Append an activity entry.

        The write runs inside a savepoint so a failure only discards the
        entry, not the caller's pending work.

        Args:
            report_id: The report the entry belongs to.
            key: Short category (setup, scrape, filter, insert, progress, ...).
            message: Human-readable narration.
            meta: Optional structured details.

        Returns:
            The created entry, or None if the write failed.
        """
        if len(message) > MAX_MESSAGE_LENGTH:
            message = message[: MAX_MESSAGE_LENGTH - 3] + "..."

        entry = ReportActivity(
            report_id=report_id,
            key=key,
            message=message,
            meta=meta,
            ts=utcnow(),
        )

        try:
            with self.db.begin_nested():
                self.db.add(entry)
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to write report activity",
                extra={"report_id": report_id, "key": key, "error": str(exc)},
            )
            return None

        return entry

    def list_entries(
        self,
        report_id: int,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[ReportActivity]:
        """List activity entries for a report in chronological order.

        Args:
            report_id: The report ID.
            since: Only return entries strictly newer than this time.
            limit: Maximum number of entries.

        Returns:
            List of entries, oldest first.
        """
        query = self.db.query(ReportActivity).filter(
            ReportActivity.report_id == report_id
        )
        if since is not None:
            query = query.filter(ReportActivity.ts > since)

        return (
            query.order_by(ReportActivity.ts.asc(), ReportActivity.id.asc())
            .limit(limit)
            .all()
        )
