"""Workflow step checkpoint ledger for Replyscope.

Each durable workflow instance (one Celery task, whose id survives retries)
records its steps in the ``workflow_steps`` table. A step that completed is
never executed again: a retried instance reads the stored result and resumes
at the first unfinished step. Step attempts are counted so transient
failures stop being retried once the per-step cap is reached.
"""

import logging
import traceback
from typing import Any, Callable, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from replyscope_core.domain.errors import PermanentWorkflowError, TransientInfraError
from replyscope_core.domain.models import StepStatus, WorkflowStep, utcnow

logger = logging.getLogger(__name__)

# Maximum length for stored error messages
MAX_ERROR_LENGTH = 5000

DEFAULT_MAX_RETRIES = 3


class StepCheckpointer:
    """Runs workflow steps at most once per instance, with per-step retry caps."""

    def __init__(
        self,
        db: DBSession,
        instance_id: str,
        workflow: str,
        report_id: Optional[int] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        """Initialize the checkpointer.

        Args:
            db: SQLAlchemy database session.
            instance_id: Stable id of the workflow instance.
            workflow: Workflow name (e.g. "initial-scrape").
            report_id: Report the instance works on.
            max_retries: Retries allowed per step after the first attempt.
        """
        self.db = db
        self.instance_id = instance_id
        self.workflow = workflow
        self.report_id = report_id
        self.max_retries = max_retries

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_checkpoint(self, step_name: str) -> Optional[WorkflowStep]:
        """Get the stored checkpoint for a step of this instance.

        Args:
            step_name: The step name.

        Returns:
            The WorkflowStep or None if the step never started.
        """
        return (
            self.db.query(WorkflowStep)
            .filter(
                WorkflowStep.instance_id == self.instance_id,
                WorkflowStep.step_name == step_name,
            )
            .first()
        )

    def completed_steps(self) -> list[str]:
        """Names of steps this instance already finished."""
        rows = (
            self.db.query(WorkflowStep.step_name)
            .filter(
                WorkflowStep.instance_id == self.instance_id,
                WorkflowStep.status == StepStatus.DONE,
            )
            .all()
        )
        return [row[0] for row in rows]

    def run(
        self,
        step_name: str,
        fn: Callable[[], Any],
        retryable: bool = True,
    ) -> Any:
        """Run a step unless it already completed.

        The step result must be JSON-serializable; it is stored and returned
        as-is on later replays of the same instance.

        Args:
            step_name: Unique step name within the workflow.
            fn: Zero-argument callable doing the work.
            retryable: If False, any failure is permanent.

        Returns:
            The step result (fresh or replayed).

        Raises:
            TransientInfraError: Step failed and may be retried
                (``exhausted`` is set once the cap is reached).
            PermanentWorkflowError: Step failed permanently.
        """
        checkpoint = self.get_checkpoint(step_name)

        if checkpoint is not None and checkpoint.status == StepStatus.DONE:
            logger.debug(
                "Replaying completed step",
                extra={"instance_id": self.instance_id, "step": step_name},
            )
            return (checkpoint.result_json or {}).get("value")

        if checkpoint is not None and checkpoint.status == StepStatus.FAILED:
            raise PermanentWorkflowError(
                f"Step {step_name} already failed: {checkpoint.last_error}",
                step=step_name,
            )

        if checkpoint is not None and checkpoint.attempts >= self.max_attempts:
            # Worker died mid-step on its last allowed attempt
            self._record_failure(step_name, "attempts exhausted", final=True)
            raise PermanentWorkflowError(
                f"Step {step_name} exhausted {checkpoint.attempts} attempts",
                step=step_name,
            )

        attempts = self._begin(step_name, checkpoint)

        try:
            result = fn()
        except PermanentWorkflowError as exc:
            self.db.rollback()
            self._record_failure(step_name, exc, final=True)
            if exc.step is None:
                exc.step = step_name
            raise
        except Exception as exc:
            self.db.rollback()
            if not retryable:
                self._record_failure(step_name, exc, final=True)
                raise PermanentWorkflowError(
                    f"Step {step_name} failed: {exc}", step=step_name
                ) from exc

            exhausted = attempts >= self.max_attempts
            self._record_failure(step_name, exc, final=exhausted)
            raise TransientInfraError(
                f"Step {step_name} failed (attempt {attempts}/{self.max_attempts}): {exc}",
                step=step_name,
                attempts=attempts,
                exhausted=exhausted,
            ) from exc

        self._complete(step_name, result)
        return result

    def _begin(self, step_name: str, checkpoint: Optional[WorkflowStep]) -> int:
        """Record the start of an attempt and return the attempt number."""
        if checkpoint is None:
            checkpoint = WorkflowStep(
                instance_id=self.instance_id,
                workflow=self.workflow,
                report_id=self.report_id,
                step_name=step_name,
                status=StepStatus.RUNNING,
                attempts=1,
            )
            self.db.add(checkpoint)
            try:
                self.db.commit()
                return 1
            except IntegrityError:
                # Another delivery of the same instance created the row first
                self.db.rollback()

        self.db.query(WorkflowStep).filter(
            WorkflowStep.instance_id == self.instance_id,
            WorkflowStep.step_name == step_name,
        ).update(
            {
                WorkflowStep.status: StepStatus.RUNNING,
                WorkflowStep.attempts: WorkflowStep.attempts + 1,
                WorkflowStep.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        self.db.commit()

        refreshed = self.get_checkpoint(step_name)
        self.db.refresh(refreshed)
        return refreshed.attempts

    def _complete(self, step_name: str, result: Any) -> None:
        """Store the step result and commit the step's work with it."""
        self.db.query(WorkflowStep).filter(
            WorkflowStep.instance_id == self.instance_id,
            WorkflowStep.step_name == step_name,
        ).update(
            {
                WorkflowStep.status: StepStatus.DONE,
                WorkflowStep.result_json: {"value": result},
                WorkflowStep.last_error: None,
                WorkflowStep.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        self.db.commit()

    def _record_failure(
        self,
        step_name: str,
        error: Union[str, Exception],
        final: bool,
    ) -> None:
        """Store the error; a final failure closes the step for good."""
        updates = {
            WorkflowStep.last_error: serialize_error(error),
            WorkflowStep.updated_at: utcnow(),
        }
        if final:
            updates[WorkflowStep.status] = StepStatus.FAILED

        self.db.query(WorkflowStep).filter(
            WorkflowStep.instance_id == self.instance_id,
            WorkflowStep.step_name == step_name,
        ).update(updates, synchronize_session=False)
        self.db.commit()


def serialize_error(
    error: Union[str, Exception],
    include_traceback: bool = False,
) -> str:
    """Serialize an error to a string suitable for storage.

    Args:
        error: The error message or exception.
        include_traceback: Whether to include the current traceback.

    Returns:
        Serialized error string (truncated if too long).
    """
    if isinstance(error, str):
        error_str = error
    elif include_traceback:
        error_str = traceback.format_exc()
    else:
        error_str = f"{type(error).__name__}: {error}"

    if len(error_str) > MAX_ERROR_LENGTH:
        error_str = error_str[: MAX_ERROR_LENGTH - 3] + "..."

    return error_str


__all__ = [
    "StepCheckpointer",
    "serialize_error",
    "DEFAULT_MAX_RETRIES",
]
