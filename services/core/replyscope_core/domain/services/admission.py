"""Report admission for Replyscope.

Validates a report request, enforces the per-user creation rate limit,
persists the report and emits the event that starts its scrape workflow.

Checks run in a fixed order and the first failure wins:
    URL -> goal -> settings normalization -> caller identity -> rate limit

The rate-limit read and the insert are two separate statements. Two requests
from the same user racing inside the window can both pass the check; the
limit is a soft guard against accidental bursts, not a quota.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from sqlalchemy.orm import Session as DBSession

from replyscope_core.config import Settings, get_settings
from replyscope_core.domain.errors import RateLimited, Unauthenticated, ValidationError
from replyscope_core.domain.models import LocalUser, Report, ReportStatus, utcnow
from replyscope_core.domain.services.events import REPORT_CREATED, EventBus
from replyscope_core.domain.services.validation import (
    DEFAULT_PRESET,
    parse_weights,
    validate_source_url,
)

logger = logging.getLogger(__name__)

DEFAULT_REPLY_THRESHOLD = 100
MIN_REPLY_THRESHOLD = 1
MAX_REPLY_THRESHOLD = 250


@dataclass
class CreateReportInput:
    """Raw report request as submitted by the caller."""

    url: Optional[str]
    goal: Optional[str]
    persona: Optional[str] = None
    preset: Optional[str] = None
    weights: Union[str, dict, None] = None
    reply_threshold: Any = None
    min_length: Any = None
    blue_only: bool = False
    min_followers: Any = None


def _parse_int(value: Any) -> Optional[int]:
    """Lenient integer parse; None when the value is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def normalize_threshold(value: Any) -> int:
    parsed = _parse_int(value)
    if parsed is None:
        parsed = DEFAULT_REPLY_THRESHOLD
    return min(max(parsed, MIN_REPLY_THRESHOLD), MAX_REPLY_THRESHOLD)


def normalize_min_length(value: Any) -> int:
    parsed = _parse_int(value)
    return 0 if parsed is None else max(parsed, 0)


def normalize_min_followers(value: Any) -> Optional[int]:
    parsed = _parse_int(value)
    return None if parsed is None or parsed <= 0 else parsed


class ReportAdmissionService:
    """Admits new reports."""

    def __init__(
        self,
        db: DBSession,
        event_bus: EventBus,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the admission service.

        Args:
            db: SQLAlchemy database session.
            event_bus: Bus used to start the scrape workflow.
            settings: Rate limit settings (defaults to app settings).
            clock: Returns the current naive UTC time (for testing).
        """
        self.db = db
        self.event_bus = event_bus
        self.settings = settings or get_settings()
        self.clock = clock or utcnow

    @property
    def rate_window(self) -> timedelta:
        return timedelta(seconds=self.settings.report_rate_window_seconds)

    def check_rate_limit(self, user_id: int, now: datetime) -> None:
        """Reject the request if the user created too many reports recently.

        Raises:
            RateLimited: With retry_after set to when the oldest report in
                the window falls out of it.
        """
        limit = self.settings.report_rate_limit
        recent = (
            self.db.query(Report.created_at)
            .filter(
                Report.user_id == user_id,
                Report.created_at >= now - self.rate_window,
            )
            .order_by(Report.created_at.asc())
            .limit(limit)
            .all()
        )

        if len(recent) >= limit:
            retry_after = recent[0][0] + self.rate_window
            logger.info(
                "Report creation rate limited",
                extra={"user_id": user_id, "retry_after": retry_after.isoformat()},
            )
            raise RateLimited(retry_after=retry_after)

    def create_report(
        self,
        data: CreateReportInput,
        user: Optional[LocalUser],
    ) -> int:
        """Validate, rate limit, persist and start a report.

        Args:
            data: The submitted request.
            user: The authenticated caller, or None.

        Returns:
            The new report ID.

        Raises:
            ValidationError: Bad URL or missing goal.
            Unauthenticated: No caller.
            RateLimited: Too many reports in the trailing window.
        """
        conversation_id = validate_source_url(data.url)

        goal = (data.goal or "").strip()
        if not goal:
            raise ValidationError("Goal is required")

        persona = (data.persona or "").strip() or None
        preset = data.preset or DEFAULT_PRESET
        weights = parse_weights(data.weights, preset)
        reply_threshold = normalize_threshold(data.reply_threshold)
        min_length = normalize_min_length(data.min_length)
        min_followers = normalize_min_followers(data.min_followers)

        if user is None:
            raise Unauthenticated()

        now = self.clock()
        self.check_rate_limit(user.id, now)

        report = Report(
            user_id=user.id,
            source_url=data.url.strip(),
            conversation_id=conversation_id,
            status=ReportStatus.SETTING_UP,
            reply_threshold=reply_threshold,
            min_length=min_length,
            blue_only=bool(data.blue_only),
            min_followers=min_followers,
            goal=goal,
            persona=persona,
            preset=preset,
            weights=weights,
            useful_count=0,
            qualified_count=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)

        # Emit only after commit so the workflow always finds the row
        self.event_bus.emit(
            REPORT_CREATED,
            {"report_id": report.id, "conversation_id": conversation_id},
        )

        logger.info(
            "Report created",
            extra={
                "report_id": report.id,
                "user_id": user.id,
                "conversation_id": conversation_id,
            },
        )
        return report.id


__all__ = [
    "CreateReportInput",
    "ReportAdmissionService",
    "normalize_threshold",
    "normalize_min_length",
    "normalize_min_followers",
]
