"""Error taxonomy shared by admission and the scrape workflow.

Admission errors surface synchronously to the caller. Workflow errors stay
inside the asynchronous task and decide whether a step is retried.
"""

from datetime import datetime
from typing import Optional


# =============================================================================
# ADMISSION
# =============================================================================


class AdmissionError(Exception):
    """Base exception for report admission failures."""

    pass


class ValidationError(AdmissionError):
    """Bad URL, goal or settings. Never retried."""

    pass


class InvalidUrl(ValidationError):
    """Source URL is not a valid X post URL."""

    pass


class Unauthenticated(AdmissionError):
    """No caller identity."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class RateLimited(AdmissionError):
    """Too many reports created in the trailing window."""

    def __init__(self, retry_after: datetime, message: Optional[str] = None):
        super().__init__(
            message
            or "Rate limit exceeded. Please wait before creating another report."
        )
        self.retry_after = retry_after


# =============================================================================
# WORKFLOW
# =============================================================================


class WorkflowError(Exception):
    """Base exception for scrape workflow failures."""

    pass


class TransientInfraError(WorkflowError):
    """Storage or provider hiccup inside a step. Retried up to the step cap."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        attempts: int = 0,
        exhausted: bool = False,
    ):
        super().__init__(message)
        self.step = step
        self.attempts = attempts
        self.exhausted = exhausted


class PermanentWorkflowError(WorkflowError):
    """Unrecoverable failure. The instance fails without retrying."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


__all__ = [
    "AdmissionError",
    "ValidationError",
    "InvalidUrl",
    "Unauthenticated",
    "RateLimited",
    "WorkflowError",
    "TransientInfraError",
    "PermanentWorkflowError",
]
