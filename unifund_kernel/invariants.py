"""
Workflow Invariants Contract.

These invariants are structural law for the workflow engine.  No setting
in ``unifund_config`` may switch them off.

This module exists solely to declare these invariants explicitly.  The
enforcement is distributed across the state machines, the ORM listeners
on the verification ledger, CampaignStateMachine.credit() and the
WorkflowCoordinator.  InvariantAuditor checks the two data-level ones
after the fact.
"""

from enum import Enum, unique


@unique
class WorkflowInvariant(str, Enum):
    """Non-configurable invariants enforced by the workflow kernel."""

    ACTIVE_IMPLIES_APPROVED = "active_implies_approved"
    """A student owning an active campaign has verification_status
    approved.  Maintained by every cascade that touches either side."""

    RAISED_EQUALS_RECEIVED = "raised_equals_received"
    """A campaign's raised_amount equals the sum of its received
    donations, each counted once.  Enforced by the atomic increment in
    CampaignStateMachine.credit() and the donation transition table."""

    LEDGER_APPEND_ONLY = "ledger_append_only"
    """Verification requests are never deleted and a decided request is
    never re-decided.  Enforced by ORM listeners."""

    CASCADE_ATOMICITY = "cascade_atomicity"
    """A cascade applies fully or not at all; the only exception is
    reported as PartialCascadeError."""

    GRACE_PERIOD = "grace_period"
    """An archive can be restored only up to its scheduled deletion
    time.  Enforced by ArchivalManager.restore()."""


ALL_WORKFLOW_INVARIANTS: frozenset[WorkflowInvariant] = frozenset(WorkflowInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "unifund_services",
    "unifund_config",
)
