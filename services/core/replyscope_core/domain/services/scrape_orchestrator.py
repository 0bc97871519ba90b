"""Scrape workflow for Replyscope reports.

One instance runs per ``report.created`` or ``report.scrape.recurring``
event. Both triggers share the same steps:

    setup -> scrape -> filter_insert -> progress -> fanout -> continuation

Every step goes through the StepCheckpointer, so a retried instance replays
finished steps from the ledger and resumes at the first unfinished one.
Each step's database work is committed together with its checkpoint.

The scrape step delivers the original post early: as soon as the provider
resolves it, its fields are committed to the report (and a title requested),
while reply collection is still running.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from replyscope_core.config import Settings, get_settings
from replyscope_core.domain.errors import PermanentWorkflowError, WorkflowError
from replyscope_core.domain.models import Report, ReportStatus, utcnow
from replyscope_core.domain.services.activity import ActivityLogger, pluralize_replies
from replyscope_core.domain.services.checkpoints import StepCheckpointer
from replyscope_core.domain.services.events import (
    REPLY_EVALUATE,
    REPORT_SCRAPE_RECURRING,
    EventBus,
)
from replyscope_core.domain.services.progress import (
    TERMINAL_STATUSES,
    ProgressTracker,
    ScrapeCapPolicy,
)
from replyscope_core.domain.services.reply_ingest import (
    AcceptanceRules,
    IngestResult,
    ReplyIngestService,
)
from replyscope_core.domain.services.title import TitleGenerator
from replyscope_core.observability.logging import WorkflowContext, get_logger
from replyscope_core.providers.base import (
    OriginalPost,
    ScrapeClient,
    ScrapeOptions,
    ScrapeResult,
)

logger = get_logger(__name__)

TRIGGER_CREATED = "created"
TRIGGER_RECURRING = "recurring"

WORKFLOW_NAMES = {
    TRIGGER_CREATED: "initial-scrape",
    TRIGGER_RECURRING: "recurring-scrape",
}

STEP_SETUP = "setup"
STEP_SCRAPE = "scrape"
STEP_FILTER_INSERT = "filter_insert"
STEP_PROGRESS = "progress"
STEP_FANOUT = "fanout"
STEP_CONTINUATION = "continuation"


def should_continue(
    reached_scrape_cap: bool,
    scraped: int,
    inserted: int,
    page_cap: int,
) -> bool:
    """Decide whether to enqueue an immediate follow-up scrape.

    True only for a full page that inserted some but not all of its
    replies, while the report is still under its scrape cap.
    """
    return (
        not reached_scrape_cap
        and scraped >= page_cap
        and inserted > 0
        and inserted < scraped
    )


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class ScrapeOrchestrator:
    """Runs one checkpointed scrape instance for a report."""

    def __init__(
        self,
        db: DBSession,
        scrape_client: ScrapeClient,
        title_generator: TitleGenerator,
        event_bus: EventBus,
        checkpoints: StepCheckpointer,
        settings: Optional[Settings] = None,
        activity: Optional[ActivityLogger] = None,
        cap_policy: Optional[ScrapeCapPolicy] = None,
    ):
        """Initialize the orchestrator.

        Args:
            db: SQLAlchemy database session.
            scrape_client: Provider scrape client.
            title_generator: Best-effort title generator.
            event_bus: Bus for fan-out and continuation events.
            checkpoints: Step ledger for this instance.
            settings: Workflow settings (defaults to app settings).
            activity: Activity logger (defaults to one on ``db``).
            cap_policy: Scrape cap policy (defaults from settings).
        """
        self.db = db
        self.scrape_client = scrape_client
        self.title_generator = title_generator
        self.event_bus = event_bus
        self.checkpoints = checkpoints
        self.settings = settings or get_settings()
        self.activity = activity or ActivityLogger(db)
        self.cap_policy = cap_policy or ScrapeCapPolicy(
            multiplier=self.settings.scrape_cap_multiplier
        )
        self.tracker = ProgressTracker(db, activity=self.activity, cap_policy=self.cap_policy)
        self.ingest = ReplyIngestService(db, activity=self.activity)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def run(self, report_id: int, conversation_id: str, trigger: str) -> dict[str, Any]:
        """Run (or resume) the workflow for one report.

        Args:
            report_id: The report ID.
            conversation_id: The X conversation to scrape.
            trigger: TRIGGER_CREATED or TRIGGER_RECURRING.

        Returns:
            Result dict with status and per-run counts.

        Raises:
            TransientInfraError: A step failed and may be retried.
            PermanentWorkflowError: The instance cannot succeed.
        """
        context = WorkflowContext(
            report_id=report_id,
            instance_id=self.checkpoints.instance_id,
            workflow=WORKFLOW_NAMES[trigger],
        )
        completed = self.checkpoints.completed_steps()
        if completed:
            logger.info("Scrape workflow resumed", context, completed_steps=completed)
        else:
            logger.info("Scrape workflow started", context, trigger=trigger)

        settings = self._step(
            context,
            STEP_SETUP,
            lambda: self._setup(report_id, trigger),
            retryable=False,
        )
        if settings.get("skip"):
            logger.info("Scrape workflow skipped", context, reason=settings["reason"])
            return {
                "status": "skipped",
                "report_id": report_id,
                "reason": settings["reason"],
            }

        scraped = ScrapeResult.from_dict(
            self._step(
                context,
                STEP_SCRAPE,
                lambda: self._scrape(report_id, conversation_id, trigger, settings),
            )
        )

        ingested = IngestResult.from_dict(
            self._step(
                context,
                STEP_FILTER_INSERT,
                lambda: self._filter_insert(report_id, scraped, settings),
            )
        )

        progress = self._step(
            context,
            STEP_PROGRESS,
            lambda: self._update_progress(report_id, ingested, settings),
        )

        self._step(
            context,
            STEP_FANOUT,
            lambda: self._fan_out(report_id, ingested, settings, len(scraped.replies)),
        )

        continuation = self._step(
            context,
            STEP_CONTINUATION,
            lambda: self._continue(
                report_id,
                conversation_id,
                progress["reached_scrape_cap"],
                len(scraped.replies),
                ingested.inserted_count,
            ),
        )

        result = {
            "status": "success",
            "report_id": report_id,
            "replies_scraped": len(scraped.replies),
            "replies_inserted": ingested.inserted_count,
            "useful_count": progress["useful_count"],
            "reached_scrape_cap": progress["reached_scrape_cap"],
            "original_post_fetched": scraped.original_post is not None,
            "queued_recurring": continuation["queued_recurring"],
        }
        logger.info("Scrape workflow finished", context, **result)
        return result

    def _step(
        self,
        context: WorkflowContext,
        step: str,
        fn: Callable[[], Any],
        retryable: bool = True,
    ) -> Any:
        step_context = context.for_step(step)
        logger.debug("Running workflow step", step_context)
        try:
            return self.checkpoints.run(step, fn, retryable=retryable)
        except WorkflowError as exc:
            logger.warning("Workflow step failed", step_context, error=str(exc))
            raise

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _setup(self, report_id: int, trigger: str) -> dict[str, Any]:
        """Load report settings; decide whether this instance has work to do."""
        report = self.db.get(Report, report_id)
        if report is None:
            raise PermanentWorkflowError(f"Report {report_id} not found", step=STEP_SETUP)

        if report.status in TERMINAL_STATUSES:
            return {"skip": True, "reason": f"report is {report.status}"}
        if report.qualified_count >= report.reply_threshold:
            return {"skip": True, "reason": "threshold reached"}

        self.tracker.advance_status(report_id, ReportStatus.SETTING_UP)
        message = (
            "Preparing your report"
            if trigger == TRIGGER_CREATED
            else "Checking for new replies"
        )
        self.activity.append(report_id, "setup", message)

        return {
            "skip": False,
            "reply_threshold": report.reply_threshold,
            "min_length": report.min_length,
            "blue_only": report.blue_only,
            "min_followers": report.min_followers,
            "useful_count": report.useful_count,
            "qualified_count": report.qualified_count,
            "last_reply_at": _to_iso(report.last_reply_at),
            "last_reply_external_id": report.last_reply_external_id,
            "has_original": report.original_post_text is not None,
        }

    def _scrape(
        self,
        report_id: int,
        conversation_id: str,
        trigger: str,
        settings: dict[str, Any],
    ) -> dict[str, Any]:
        """Scrape replies, delivering the original post as soon as it resolves."""
        self.activity.append(report_id, "scrape", "Looking up initial posts")

        options = ScrapeOptions(
            sort="Oldest",
            page_cap=self.settings.scrape_page_cap,
            blue_only=settings["blue_only"],
            min_followers=settings["min_followers"],
            include_original=trigger == TRIGGER_CREATED or not settings["has_original"],
            since=(
                _from_iso(settings["last_reply_at"])
                if trigger == TRIGGER_RECURRING
                else None
            ),
        )

        async def on_original_fetched(original: OriginalPost) -> None:
            await self._store_original(report_id, original)

        result = asyncio.run(
            self.scrape_client.scrape(conversation_id, options, on_original_fetched)
        )
        return result.to_dict()

    async def _store_original(self, report_id: int, original: OriginalPost) -> None:
        """Commit the original post to the report, then try for a title."""
        try:
            self.db.query(Report).filter(Report.id == report_id).update(
                {
                    Report.original_post_text: original.text,
                    Report.original_author_username: original.author.username,
                    Report.original_author_avatar: original.author.avatar_url,
                    Report.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
            self.activity.append(
                report_id,
                "scrape",
                f"Found your post by @{original.author.username}",
                meta={"author": original.author.username},
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "Failed to store original post",
                report_id=report_id,
                error=str(exc),
            )
            return

        try:
            title = await self.title_generator.generate_title(original.text)
        except Exception as exc:
            # Titles are cosmetic; a failure must not fail the scrape step
            logger.warning(
                "Title generation raised",
                report_id=report_id,
                error=str(exc),
            )
            return
        if not title:
            return

        try:
            self.db.query(Report).filter(Report.id == report_id).update(
                {Report.title: title[:255]},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "Failed to store report title",
                report_id=report_id,
                error=str(exc),
            )

    def _filter_insert(
        self,
        report_id: int,
        scraped: ScrapeResult,
        settings: dict[str, Any],
    ) -> dict[str, Any]:
        rules = AcceptanceRules(
            blue_only=settings["blue_only"],
            min_length=settings["min_length"],
            min_followers=settings["min_followers"],
        )
        result = self.ingest.filter_and_insert(
            report_id,
            scraped.replies,
            rules,
            last_reply_at=_from_iso(settings["last_reply_at"]),
            last_reply_external_id=settings["last_reply_external_id"],
        )
        return result.to_dict()

    def _update_progress(
        self,
        report_id: int,
        ingested: IngestResult,
        settings: dict[str, Any],
    ) -> dict[str, Any]:
        return self.tracker.update_progress(
            report_id,
            ingested.inserted_count,
            settings["reply_threshold"],
            last_reply_at=ingested.last_timestamp,
            last_reply_external_id=ingested.last_external_id,
        )

    def _fan_out(
        self,
        report_id: int,
        ingested: IngestResult,
        settings: dict[str, Any],
        scraped_count: int,
    ) -> dict[str, Any]:
        """Emit one evaluation event per inserted reply."""
        if ingested.inserted_count == 0:
            if scraped_count > 0:
                self.activity.append(report_id, "evaluate", "No new replies to evaluate")
            return {"emitted": 0}

        count = len(ingested.inserted_items)
        self.activity.append(
            report_id,
            "evaluate",
            f"Evaluating {count} {pluralize_replies(count)}",
            meta={"count": count},
        )
        emitted = self.event_bus.emit_many(
            REPLY_EVALUATE,
            (
                {
                    "reply_id": item["reply_id"],
                    "report_id": report_id,
                    "min_length": settings["min_length"],
                }
                for item in ingested.inserted_items
            ),
        )
        return {"emitted": emitted}

    def _continue(
        self,
        report_id: int,
        conversation_id: str,
        reached_scrape_cap: bool,
        scraped_count: int,
        inserted_count: int,
    ) -> dict[str, Any]:
        """Enqueue an immediate recurring scrape when the page looks unfinished."""
        if not should_continue(
            reached_scrape_cap,
            scraped_count,
            inserted_count,
            self.settings.scrape_page_cap,
        ):
            return {"queued_recurring": False}

        self.activity.append(report_id, "scrape", "Fetching more replies...")
        self.event_bus.emit(
            REPORT_SCRAPE_RECURRING,
            {"report_id": report_id, "conversation_id": conversation_id},
        )
        return {"queued_recurring": True}


__all__ = [
    "TRIGGER_CREATED",
    "TRIGGER_RECURRING",
    "WORKFLOW_NAMES",
    "ScrapeOrchestrator",
    "should_continue",
]
