"""Unit tests for the workflow step checkpoint ledger.

Tests cover:
- Completed steps replay their stored result
- Transient failures count attempts until exhausted
- Permanent and non-retryable failures
- Step work committed with the checkpoint
"""

import pytest

from replyscope_core.domain.errors import PermanentWorkflowError, TransientInfraError
from replyscope_core.domain.models import Report, StepStatus, WorkflowStep
from replyscope_core.domain.services.checkpoints import (
    MAX_ERROR_LENGTH,
    StepCheckpointer,
    serialize_error,
)
from tests.factories import create_local_user, create_report


@pytest.fixture
def checkpoints(db_session):
    return StepCheckpointer(
        db_session, instance_id="task-1", workflow="initial-scrape", report_id=1, max_retries=2
    )


class TestStepCheckpointer:
    """Tests for StepCheckpointer.run."""

    def test_runs_and_stores_result(self, checkpoints, db_session):
        result = checkpoints.run("setup", lambda: {"threshold": 50})

        assert result == {"threshold": 50}
        step = checkpoints.get_checkpoint("setup")
        assert step.status == StepStatus.DONE
        assert step.attempts == 1
        assert step.result_json == {"value": {"threshold": 50}}
        assert checkpoints.completed_steps() == ["setup"]

    def test_completed_step_is_not_rerun(self, checkpoints):
        calls = []

        def step():
            calls.append(1)
            return len(calls)

        assert checkpoints.run("scrape", step) == 1
        assert checkpoints.run("scrape", step) == 1
        assert len(calls) == 1

    def test_replay_across_instances_of_same_id(self, db_session):
        """A retried task with the same id replays finished steps."""
        first = StepCheckpointer(db_session, "task-9", "recurring-scrape")
        first.run("setup", lambda: "stored")

        second = StepCheckpointer(db_session, "task-9", "recurring-scrape")
        assert second.run("setup", lambda: "fresh") == "stored"

    def test_different_instances_are_independent(self, db_session):
        StepCheckpointer(db_session, "task-a", "initial-scrape").run("setup", lambda: "a")

        assert StepCheckpointer(db_session, "task-b", "initial-scrape").run(
            "setup", lambda: "b"
        ) == "b"

    def test_none_result_replays_as_none(self, checkpoints):
        checkpoints.run("fanout", lambda: None)

        assert checkpoints.run("fanout", lambda: "again") is None

    def test_transient_failure_then_success(self, checkpoints):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise ConnectionError("provider timeout")
            return "ok"

        with pytest.raises(TransientInfraError) as exc_info:
            checkpoints.run("scrape", flaky)

        assert exc_info.value.attempts == 1
        assert exc_info.value.exhausted is False
        assert exc_info.value.step == "scrape"
        assert "ConnectionError" in checkpoints.get_checkpoint("scrape").last_error

        assert checkpoints.run("scrape", flaky) == "ok"
        step = checkpoints.get_checkpoint("scrape")
        assert step.attempts == 2
        assert step.last_error is None

    def test_exhausts_after_max_attempts(self, checkpoints):
        def broken():
            raise ConnectionError("down")

        for attempt in (1, 2):
            with pytest.raises(TransientInfraError) as exc_info:
                checkpoints.run("scrape", broken)
            assert exc_info.value.exhausted is False
            assert exc_info.value.attempts == attempt

        with pytest.raises(TransientInfraError) as exc_info:
            checkpoints.run("scrape", broken)
        assert exc_info.value.exhausted is True
        assert exc_info.value.attempts == 3
        assert checkpoints.get_checkpoint("scrape").status == StepStatus.FAILED

        # A failed step stays failed
        with pytest.raises(PermanentWorkflowError):
            checkpoints.run("scrape", lambda: "too late")

    def test_non_retryable_failure_is_permanent(self, checkpoints):
        def broken():
            raise RuntimeError("bad read")

        with pytest.raises(PermanentWorkflowError) as exc_info:
            checkpoints.run("setup", broken, retryable=False)

        assert exc_info.value.step == "setup"
        assert checkpoints.get_checkpoint("setup").status == StepStatus.FAILED

    def test_permanent_error_passes_through(self, checkpoints):
        def missing():
            raise PermanentWorkflowError("Report 1 not found")

        with pytest.raises(PermanentWorkflowError) as exc_info:
            checkpoints.run("setup", missing)

        assert exc_info.value.step == "setup"

    def test_stale_running_step_at_cap_fails(self, checkpoints, db_session):
        """A step left running on its last attempt is not retried again."""
        db_session.add(
            WorkflowStep(
                instance_id="task-1",
                workflow="initial-scrape",
                step_name="scrape",
                status=StepStatus.RUNNING,
                attempts=3,
            )
        )
        db_session.commit()

        with pytest.raises(PermanentWorkflowError):
            checkpoints.run("scrape", lambda: "never")

        assert checkpoints.get_checkpoint("scrape").status == StepStatus.FAILED

    def test_failed_step_work_rolled_back(self, db_session):
        """Uncommitted work from a failed step is discarded."""
        user = create_local_user(db_session)
        report = create_report(db_session, user, useful_count=0)
        db_session.commit()
        checkpoints = StepCheckpointer(db_session, "task-2", "initial-scrape", report.id)

        def partial():
            db_session.query(Report).filter(Report.id == report.id).update(
                {Report.useful_count: 99}, synchronize_session=False
            )
            raise ConnectionError("lost connection")

        with pytest.raises(TransientInfraError):
            checkpoints.run("progress", partial)

        refreshed = db_session.get(Report, report.id)
        db_session.refresh(refreshed)
        assert refreshed.useful_count == 0

    def test_step_work_committed_with_checkpoint(self, db_session, sync_session_factory):
        user = create_local_user(db_session)
        report_id = create_report(db_session, user).id
        db_session.commit()
        checkpoints = StepCheckpointer(db_session, "task-3", "initial-scrape", report_id)

        def work():
            db_session.query(Report).filter(Report.id == report_id).update(
                {Report.useful_count: 7}, synchronize_session=False
            )
            return 7

        checkpoints.run("progress", work)

        other = sync_session_factory()
        try:
            assert other.get(Report, report_id).useful_count == 7
        finally:
            other.close()


class TestSerializeError:
    """Tests for serialize_error."""

    def test_string_passthrough(self):
        assert serialize_error("plain") == "plain"

    def test_exception_includes_type(self):
        assert serialize_error(ValueError("bad")) == "ValueError: bad"

    def test_truncates_long_errors(self):
        result = serialize_error("x" * (MAX_ERROR_LENGTH + 100))

        assert len(result) == MAX_ERROR_LENGTH
        assert result.endswith("...")
