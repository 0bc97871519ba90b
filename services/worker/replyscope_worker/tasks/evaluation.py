"""Reply evaluation tasks.

One task per inserted reply. Replies whose meaningful text is shorter
than the report's minimum length are recorded as excluded right away;
everything else is handed to the scoring collaborator.
"""

import logging

from replyscope_worker.celery_app import app

logger = logging.getLogger(__name__)


@app.task(
    bind=True,
    name="replies.evaluate",
    max_retries=3,
    default_retry_delay=30,
)
def evaluate_reply(self, reply_id: int, report_id: int, min_length: int = 0) -> dict:
    """Evaluate a single reply.

    Args:
        reply_id: The reply ID.
        report_id: The owning report ID.
        min_length: Minimum meaningful length (mentions and URLs removed).

    Returns:
        Dictionary with status and the recorded outcome.
    """
    from sqlalchemy.exc import SQLAlchemyError

    from replyscope_core.domain.models import EvaluationStatus, Reply
    from replyscope_core.domain.services.progress import ProgressTracker
    from replyscope_core.domain.services.validation import meaningful_length
    from replyscope_core.infra.db import get_sync_session_factory

    session = get_sync_session_factory()()

    try:
        reply = (
            session.query(Reply)
            .filter(Reply.id == reply_id, Reply.report_id == report_id)
            .first()
        )

        if not reply:
            return {
                "status": "error",
                "error": f"Reply {reply_id} not found",
                "reply_id": reply_id,
            }

        if reply.evaluation_status == EvaluationStatus.EVALUATED:
            return {
                "status": "skipped",
                "reason": "already_evaluated",
                "reply_id": reply_id,
            }

        tracker = ProgressTracker(session)
        length = meaningful_length(reply.text)

        if length < (min_length or 0):
            outcome = tracker.record_evaluation(reply_id, report_id, included=False)
            session.commit()
            logger.debug(f"Reply {reply_id} excluded: {length} < {min_length} chars")
            return {
                "status": "success",
                "reply_id": reply_id,
                "included": False,
                "reason": "too_short",
                "recorded": outcome["recorded"],
            }

        tracker.mark_evaluating(reply_id, report_id)
        session.commit()
        return {
            "status": "pending_score",
            "reply_id": reply_id,
            "report_id": report_id,
            "length": length,
        }

    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"Failed to evaluate reply {reply_id}: {exc}")
        raise self.retry(exc=exc)

    finally:
        session.close()


__all__ = ["evaluate_reply"]
