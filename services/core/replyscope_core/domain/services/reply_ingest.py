"""Reply filtering and insertion for Replyscope.

Takes a scraped batch, applies the report's acceptance rules, drops replies
the report already stores and inserts the rest. Safe to call again with an
overlapping batch: only net-new external ids are inserted.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from replyscope_core.domain.models import EvaluationStatus, Reply, utcnow
from replyscope_core.domain.services.activity import ActivityLogger, pluralize_replies
from replyscope_core.domain.services.validation import meaningful_length
from replyscope_core.providers.base import ScrapedReply

logger = logging.getLogger(__name__)

BOT_USERNAMES = frozenset({"grok"})


@dataclass
class AcceptanceRules:
    """Per-report acceptance filters."""

    blue_only: bool = False
    min_length: int = 0
    min_followers: Optional[int] = None

    def accepts(self, reply: ScrapedReply) -> bool:
        if reply.author.username.lower() in BOT_USERNAMES:
            return False
        if self.blue_only and not reply.author.is_verified:
            return False
        if self.min_length > 0 and meaningful_length(reply.text) < self.min_length:
            return False
        if self.min_followers and reply.author.followers < self.min_followers:
            return False
        return True


@dataclass
class IngestResult:
    """Outcome of one filter-and-insert pass."""

    inserted_count: int = 0
    inserted_items: list[dict[str, Any]] = field(default_factory=list)
    last_timestamp: Optional[datetime] = None
    last_external_id: Optional[str] = None
    filtered_out: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted_count": self.inserted_count,
            "inserted_items": list(self.inserted_items),
            "last_timestamp": (
                self.last_timestamp.isoformat() if self.last_timestamp else None
            ),
            "last_external_id": self.last_external_id,
            "filtered_out": self.filtered_out,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IngestResult":
        last_timestamp = data.get("last_timestamp")
        return cls(
            inserted_count=data.get("inserted_count", 0),
            inserted_items=list(data.get("inserted_items", [])),
            last_timestamp=(
                datetime.fromisoformat(last_timestamp) if last_timestamp else None
            ),
            last_external_id=data.get("last_external_id"),
            filtered_out=data.get("filtered_out", 0),
        )


def latest_reply(
    replies: Iterable[ScrapedReply],
    previous_at: Optional[datetime] = None,
    previous_id: Optional[str] = None,
) -> tuple[Optional[datetime], Optional[str]]:
    """Newest timestamp (and its external id) across replies and the previous mark."""
    latest_at, latest_id = previous_at, previous_id
    for reply in replies:
        if reply.created_at is None:
            continue
        if latest_at is None or reply.created_at > latest_at:
            latest_at, latest_id = reply.created_at, reply.external_id
    return latest_at, latest_id


class ReplyIngestService:
    """Filters scraped replies and inserts the accepted, unseen ones."""

    def __init__(self, db: DBSession, activity: Optional[ActivityLogger] = None):
        self.db = db
        self.activity = activity or ActivityLogger(db)

    def _existing_external_ids(self, report_id: int, external_ids: list[str]) -> set[str]:
        if not external_ids:
            return set()
        rows = (
            self.db.query(Reply.external_id)
            .filter(
                Reply.report_id == report_id,
                Reply.external_id.in_(external_ids),
            )
            .all()
        )
        return {row[0] for row in rows}

    def _insert(self, report_id: int, replies: list[ScrapedReply]) -> list[Reply]:
        """Insert replies not yet stored for the report."""
        existing = self._existing_external_ids(
            report_id, [reply.external_id for reply in replies]
        )

        rows: list[Reply] = []
        seen: set[str] = set(existing)
        now = utcnow()
        for reply in replies:
            if reply.external_id in seen:
                continue
            seen.add(reply.external_id)
            rows.append(
                Reply(
                    report_id=report_id,
                    external_id=reply.external_id,
                    author_username=reply.author.username,
                    author_external_id=reply.author.external_id or None,
                    author_avatar=reply.author.avatar_url,
                    verified=reply.author.is_verified,
                    follower_count=reply.author.followers,
                    text=reply.text,
                    length=meaningful_length(reply.text),
                    posted_at=reply.created_at,
                    observed_at=now,
                    evaluation_status=EvaluationStatus.PENDING,
                )
            )

        if rows:
            with self.db.begin_nested():
                self.db.add_all(rows)
        return rows

    def filter_and_insert(
        self,
        report_id: int,
        replies: list[ScrapedReply],
        rules: AcceptanceRules,
        last_reply_at: Optional[datetime] = None,
        last_reply_external_id: Optional[str] = None,
    ) -> IngestResult:
        """Filter a scraped batch and insert the net-new accepted replies.

        Args:
            report_id: The report ID.
            replies: Scraped replies, in provider order.
            rules: Acceptance rules from the report settings.
            last_reply_at: The report's current pagination mark.
            last_reply_external_id: External id at that mark.

        Returns:
            IngestResult. Pending inserts are flushed, not committed.
        """
        if not replies:
            self.activity.append(report_id, "scrape", "No new replies found")
            return IngestResult(
                last_timestamp=last_reply_at,
                last_external_id=last_reply_external_id,
            )

        self.activity.append(
            report_id,
            "scrape",
            f"Processing {len(replies)} {pluralize_replies(len(replies))}",
            meta={"found": len(replies)},
        )

        accepted = [reply for reply in replies if rules.accepts(reply)]
        rejected = len(replies) - len(accepted)
        if rejected > 0:
            self.activity.append(
                report_id,
                "filter",
                f"Filtered {rejected} low-signal {pluralize_replies(rejected)}",
                meta={"filtered_out": rejected, "kept": len(accepted)},
            )

        last_at, last_id = latest_reply(replies, last_reply_at, last_reply_external_id)

        try:
            inserted = self._insert(report_id, accepted)
        except IntegrityError:
            # A concurrent instance stored some of these first
            logger.info(
                "Reply insert raced, re-resolving duplicates",
                extra={"report_id": report_id},
            )
            inserted = self._insert(report_id, accepted)

        if inserted:
            self.activity.append(
                report_id,
                "insert",
                f"Saved {len(inserted)} {pluralize_replies(len(inserted))} for evaluation",
                meta={"inserted": len(inserted)},
            )

        logger.info(
            "Replies ingested",
            extra={
                "report_id": report_id,
                "scraped": len(replies),
                "accepted": len(accepted),
                "inserted": len(inserted),
            },
        )

        return IngestResult(
            inserted_count=len(inserted),
            inserted_items=[
                {"reply_id": row.id, "external_id": row.external_id} for row in inserted
            ],
            last_timestamp=last_at,
            last_external_id=last_id,
            filtered_out=len(replies) - len(inserted),
        )


__all__ = [
    "BOT_USERNAMES",
    "AcceptanceRules",
    "IngestResult",
    "ReplyIngestService",
    "latest_reply",
]
