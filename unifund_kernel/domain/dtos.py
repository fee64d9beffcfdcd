"""
Data Transfer Objects for the workflow kernel.

These are pure data structures with no behavior beyond derived
properties.  Models convert to them via ``to_dto()``; services and the
coordinator hand them to callers, so no live ORM instance ever leaves a
unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from unifund_kernel.domain.lifecycle import (
    CampaignStatus,
    DocumentType,
    DonationStatus,
    IdentityStatus,
    NotificationType,
    Role,
    VerificationStatus,
)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, _Serializable):
        return value.to_dict()
    return value


class _Serializable:
    """Mixin giving frozen records a JSON-safe ``to_dict()``."""

    def to_dict(self) -> dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class ProfileRecord(_Serializable):
    """Account-level profile (every user has exactly one)."""

    id: UUID
    email: str
    role: Role
    first_name: str
    last_name: str
    phone: str | None
    created_at: datetime


@dataclass(frozen=True)
class StudentRecord(_Serializable):
    """A student and their cached verification status."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    phone: str | None
    university_id: UUID | None
    student_number: str | None
    course: str | None
    year_of_study: str | None
    expected_graduation: str | None
    verification_status: IdentityStatus
    created_at: datetime
    updated_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class VerificationRequestRecord(_Serializable):
    """One immutable-once-decided verification submission."""

    id: UUID
    student_id: UUID
    document_type: DocumentType
    document_url: str
    status: VerificationStatus
    submitted_at: datetime
    rejection_reason: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None


@dataclass(frozen=True)
class CampaignRecord(_Serializable):
    """A funding campaign and its raised total."""

    id: UUID
    student_id: UUID
    title: str
    story: str
    category: str
    goal_amount: Decimal
    raised_amount: Decimal
    currency: str
    status: CampaignStatus
    document_urls: tuple[str, ...]
    created_at: datetime
    updated_at: datetime

    @property
    def percent_funded(self) -> Decimal:
        if self.goal_amount <= 0:
            return Decimal("0")
        return (self.raised_amount * 100 / self.goal_amount).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class DonationRecord(_Serializable):
    """A donation attempt.  campaign_id None means a platform-level gift."""

    id: UUID
    campaign_id: UUID | None
    donor_id: UUID | None
    amount: Decimal
    status: DonationStatus
    created_at: datetime
    payment_reference: str | None = None
    message: str | None = None
    is_anonymous: bool = False
    decided_at: datetime | None = None

    @property
    def is_platform_gift(self) -> bool:
        return self.campaign_id is None


@dataclass(frozen=True)
class ArchivedProfileRecord(_Serializable):
    """Point-in-time copy of a disabled profile."""

    id: UUID
    original_user_id: UUID
    role: Role
    disabled_at: datetime
    scheduled_deletion_at: datetime
    snapshot: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationRecord(_Serializable):
    """A notification as written by the dispatcher."""

    id: UUID
    recipient_user_id: UUID
    type: NotificationType
    title: str
    message: str
    read: bool
    created_at: datetime
    payload: dict[str, Any] | None = None


@dataclass(frozen=True)
class CascadeStep(_Serializable):
    """One entity status change applied as part of a cascade."""

    entity_type: str
    entity_id: UUID
    from_state: str | None
    to_state: str


@dataclass(frozen=True)
class CascadeRunRecord(_Serializable):
    """A cascade that was applied and committed."""

    id: UUID
    operation: str
    target_type: str
    target_id: UUID
    actor_id: UUID
    steps: tuple[CascadeStep, ...]
    notification_count: int
    applied_at: datetime


@dataclass(frozen=True)
class Transitioned:
    """
    Result of a single state-machine call.

    ``changed`` is False when the call was an idempotent re-application
    and nothing was written.
    """

    record: Any
    changed: bool
    previous_status: str | None = None
