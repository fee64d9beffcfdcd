"""Selectors for the workflow kernel (read side)."""

from unifund_kernel.selectors.workflow_selector import PlatformStats, WorkflowSelector

__all__ = [
    "PlatformStats",
    "WorkflowSelector",
]
