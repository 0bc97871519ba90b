"""Infrastructure components for Replyscope.

This package contains infrastructure-level components like:
- Global workflow concurrency slots
"""

from replyscope_core.infrastructure.concurrency import (
    WorkflowSlots,
    get_workflow_slots,
)

__all__ = [
    "WorkflowSlots",
    "get_workflow_slots",
]
