"""Observability package for structured logging."""

from replyscope_core.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    WorkflowContext,
    get_logger,
    configure_logging,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "WorkflowContext",
    "get_logger",
    "configure_logging",
]
