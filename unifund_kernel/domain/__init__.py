"""
Pure domain layer.

Lifecycle enums and transition tables, DTOs, and the clock abstraction,
with NO dependencies on the ORM, the database, or I/O.
"""

from unifund_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from unifund_kernel.domain.dtos import (
    ArchivedProfileRecord,
    CampaignRecord,
    CascadeRunRecord,
    CascadeStep,
    DonationRecord,
    NotificationRecord,
    ProfileRecord,
    StudentRecord,
    Transitioned,
    VerificationRequestRecord,
)
from unifund_kernel.domain.lifecycle import (
    CampaignStatus,
    Decision,
    DocumentType,
    DonationStatus,
    IdentityStatus,
    NotificationType,
    Role,
    VerificationStatus,
)

__all__ = [
    "ArchivedProfileRecord",
    "CampaignRecord",
    "CampaignStatus",
    "CascadeRunRecord",
    "CascadeStep",
    "Clock",
    "Decision",
    "DeterministicClock",
    "DocumentType",
    "DonationRecord",
    "DonationStatus",
    "IdentityStatus",
    "NotificationRecord",
    "NotificationType",
    "ProfileRecord",
    "Role",
    "StudentRecord",
    "SystemClock",
    "Transitioned",
    "VerificationRequestRecord",
    "VerificationStatus",
]
