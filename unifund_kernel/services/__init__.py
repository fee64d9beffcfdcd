"""Services for the workflow kernel (write side)."""

from unifund_kernel.services.archival_manager import ArchivalManager
from unifund_kernel.services.campaign_state_machine import CampaignStateMachine
from unifund_kernel.services.cascade_recorder import CascadeRecorder
from unifund_kernel.services.donation_ledger import DonationLedger
from unifund_kernel.services.identity_state_machine import IdentityStateMachine
from unifund_kernel.services.invariant_auditor import (
    AuditReport,
    InvariantAuditor,
    InvariantViolation,
)
from unifund_kernel.services.notification_dispatcher import NotificationDispatcher
from unifund_kernel.services.verification_ledger import VerificationLedger

__all__ = [
    "ArchivalManager",
    "AuditReport",
    "CampaignStateMachine",
    "CascadeRecorder",
    "DonationLedger",
    "IdentityStateMachine",
    "InvariantAuditor",
    "InvariantViolation",
    "NotificationDispatcher",
    "VerificationLedger",
]
