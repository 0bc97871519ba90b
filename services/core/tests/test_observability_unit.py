"""Unit tests for structured logging."""

import json
import logging
import sys
from datetime import datetime
from io import StringIO

import pytest

from replyscope_core.observability.logging import (
    JsonFormatter,
    StructuredLogger,
    WorkflowContext,
    configure_logging,
    get_logger,
)


def _record(msg="Test message", level=logging.INFO, args=(), exc_info=None):
    return logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JSON log formatter."""

    def test_format_basic_log_record(self):
        parsed = json.loads(JsonFormatter().format(_record()))

        assert parsed["message"] == "Test message"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test.logger"
        assert parsed["service"] == "replyscope"
        assert "T" in parsed["timestamp"]
        assert "source" not in parsed

    def test_warning_includes_source(self):
        parsed = json.loads(JsonFormatter().format(_record(level=logging.WARNING)))

        assert parsed["source"]["line"] == 42

    def test_format_log_with_extra_fields(self):
        record = _record()
        record.report_id = 7
        record.instance_id = "task-1"

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["report_id"] == 7
        assert parsed["instance_id"] == "task-1"

    def test_non_serializable_extras_stringified(self):
        record = _record()
        record.when = datetime(2026, 10, 1, 12, 0, 0)
        record.obj = object()

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["when"] == "2026-10-01T12:00:00"
        assert parsed["obj"].startswith("<object object")

    def test_format_log_with_exception(self):
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(
            JsonFormatter().format(_record(level=logging.ERROR, exc_info=exc_info))
        )

        assert "ValueError" in parsed["exception"]

    def test_format_log_with_message_args(self):
        parsed = json.loads(
            JsonFormatter(service_name="replyscope-worker").format(
                _record(msg="Report %s moved to %s", args=(7, "scraping"))
            )
        )

        assert parsed["message"] == "Report 7 moved to scraping"
        assert parsed["service"] == "replyscope-worker"


class TestWorkflowContext:
    """Tests for workflow logging context."""

    def test_to_dict_skips_unset_fields(self):
        assert WorkflowContext(report_id=7).to_dict() == {"report_id": 7}

    def test_to_dict_with_extra_data(self):
        context = WorkflowContext(
            report_id=7,
            instance_id="task-1",
            workflow="initial-scrape",
            extra={"trigger": "created"},
        )

        assert context.to_dict() == {
            "report_id": 7,
            "instance_id": "task-1",
            "workflow": "initial-scrape",
            "trigger": "created",
        }

    def test_for_step_copies(self):
        context = WorkflowContext(report_id=7, extra={"a": 1})

        scoped = context.for_step("scrape")
        scoped.extra["b"] = 2

        assert scoped.step == "scrape"
        assert context.step is None
        assert context.extra == {"a": 1}


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    @pytest.fixture
    def captured(self):
        buffer = StringIO()
        handler = logging.StreamHandler(buffer)
        handler.setFormatter(JsonFormatter())
        logger = StructuredLogger("test.structured")
        logger._logger.addHandler(handler)
        logger._logger.setLevel(logging.DEBUG)
        yield logger, buffer
        logger._logger.removeHandler(handler)

    def test_log_with_context_and_fields(self, captured):
        logger, buffer = captured

        logger.info(
            "Scrape workflow started",
            WorkflowContext(report_id=7, instance_id="task-1"),
            trigger="created",
        )

        parsed = json.loads(buffer.getvalue().strip())
        assert parsed["message"] == "Scrape workflow started"
        assert parsed["report_id"] == 7
        assert parsed["instance_id"] == "task-1"
        assert parsed["trigger"] == "created"

    def test_fields_override_context(self, captured):
        logger, buffer = captured

        logger.warning("Stalled", WorkflowContext(step="setup"), step="scrape")

        assert json.loads(buffer.getvalue().strip())["step"] == "scrape"

    def test_log_error_with_exception(self, captured):
        logger, buffer = captured

        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.error("Step failed", exc_info=True)

        assert "RuntimeError" in json.loads(buffer.getvalue().strip())["exception"]

    def test_debug(self, captured):
        logger, buffer = captured

        logger.debug("Replaying step")

        assert json.loads(buffer.getvalue().strip())["level"] == "DEBUG"


class TestGetLogger:
    def test_same_name_returns_same_instance(self):
        assert get_logger("test.same") is get_logger("test.same")

    def test_different_names(self):
        assert get_logger("test.a") is not get_logger("test.b")


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_sets_level_and_json_handler(self, restore_root_logger):
        configure_logging(level="DEBUG", json_format=True, service_name="replyscope-core")

        assert restore_root_logger.level == logging.DEBUG
        formatter = restore_root_logger.handlers[0].formatter
        assert isinstance(formatter, JsonFormatter)
        assert formatter.service_name == "replyscope-core"

    def test_plain_format(self, restore_root_logger):
        configure_logging(level="INFO", json_format=False)

        assert not isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)

    def test_quiets_noisy_loggers(self, restore_root_logger):
        configure_logging(level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_invalid_level(self, restore_root_logger):
        with pytest.raises(ValueError):
            configure_logging(level="LOUD")
