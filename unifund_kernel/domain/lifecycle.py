"""
Lifecycle types (``unifund_kernel.domain.lifecycle``).

Responsibility
--------------
Pure value objects for the four coupled state machines: verification
requests, student identity, campaigns and donations.  Defines the status
enums, the transition tables and the terminal sets, plus the other closed
vocabularies (document types, roles, notification types).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Each ``*_TRANSITIONS`` table defines the only valid status changes for
  ordinary (non-forced) transitions.  Terminal states have no outgoing
  edges.
* ``IDENTITY_TRANSITIONS`` is cyclic: identity status is current belief,
  not history.
* ``check_transition`` raises ``InvalidTransitionError`` for any edge not
  in the table.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from unifund_kernel.exceptions import InvalidTransitionError


class VerificationStatus(str, Enum):
    """Status of one verification-document submission."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class IdentityStatus(str, Enum):
    """A student's cached verification status."""

    UNVERIFIED = "unverified"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CampaignStatus(str, Enum):
    """Publication status of a campaign."""

    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    DELETED = "deleted"


class DonationStatus(str, Enum):
    """Settlement status of a donation."""

    PENDING = "pending"
    RECEIVED = "received"
    REJECTED = "rejected"


class DocumentType(str, Enum):
    """Kinds of verification document a student can submit."""

    IDENTITY = "identity"
    ENROLLMENT = "enrollment"
    FEE_STATEMENT = "feeStatement"
    ACADEMIC_RECORD = "academicRecord"


class Role(str, Enum):
    """Account roles."""

    STUDENT = "student"
    DONOR = "donor"
    ADMIN = "admin"


class NotificationType(str, Enum):
    """Typed notification kinds written by the dispatcher."""

    VERIFICATION_UPDATE = "verification_update"
    CAMPAIGN_UPDATE = "campaign_update"
    DONATION_RECEIVED = "donation_received"
    PAYMENT_MADE = "payment_made"
    PROFILE_UPDATE = "profile_update"


class Decision(str, Enum):
    """Outcome an administrator applies to a pending item."""

    APPROVE = "approve"
    REJECT = "reject"


# =========================================================================
# Transition tables
# =========================================================================


VERIFICATION_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.PENDING: frozenset({
        VerificationStatus.APPROVED,
        VerificationStatus.REJECTED,
    }),
    VerificationStatus.APPROVED: frozenset(),
    VerificationStatus.REJECTED: frozenset(),
}

TERMINAL_VERIFICATION_STATUSES: frozenset[VerificationStatus] = frozenset({
    VerificationStatus.APPROVED,
    VerificationStatus.REJECTED,
})

IDENTITY_TRANSITIONS: dict[IdentityStatus, frozenset[IdentityStatus]] = {
    IdentityStatus.UNVERIFIED: frozenset({IdentityStatus.PENDING}),
    IdentityStatus.PENDING: frozenset({
        IdentityStatus.APPROVED,
        IdentityStatus.REJECTED,
    }),
    IdentityStatus.APPROVED: frozenset({IdentityStatus.PENDING}),
    IdentityStatus.REJECTED: frozenset({IdentityStatus.PENDING}),
}

CAMPAIGN_TRANSITIONS: dict[CampaignStatus, frozenset[CampaignStatus]] = {
    CampaignStatus.PENDING: frozenset({
        CampaignStatus.ACTIVE,
        CampaignStatus.REJECTED,
        CampaignStatus.DELETED,
    }),
    CampaignStatus.ACTIVE: frozenset({CampaignStatus.DELETED}),
    CampaignStatus.REJECTED: frozenset(),
    CampaignStatus.DELETED: frozenset(),
}

TERMINAL_CAMPAIGN_STATUSES: frozenset[CampaignStatus] = frozenset({
    CampaignStatus.REJECTED,
    CampaignStatus.DELETED,
})

DONATION_TRANSITIONS: dict[DonationStatus, frozenset[DonationStatus]] = {
    DonationStatus.PENDING: frozenset({
        DonationStatus.RECEIVED,
        DonationStatus.REJECTED,
    }),
    DonationStatus.RECEIVED: frozenset(),
    DonationStatus.REJECTED: frozenset(),
}

TERMINAL_DONATION_STATUSES: frozenset[DonationStatus] = frozenset({
    DonationStatus.RECEIVED,
    DonationStatus.REJECTED,
})

VERIFICATION_OUTCOMES: dict[Decision, VerificationStatus] = {
    Decision.APPROVE: VerificationStatus.APPROVED,
    Decision.REJECT: VerificationStatus.REJECTED,
}

DONATION_OUTCOMES: dict[Decision, DonationStatus] = {
    Decision.APPROVE: DonationStatus.RECEIVED,
    Decision.REJECT: DonationStatus.REJECTED,
}


def check_transition(
    table: Mapping[Any, frozenset[Any]],
    entity_type: str,
    entity_id: Any,
    from_state: Enum,
    to_state: Enum,
) -> None:
    """Raise ``InvalidTransitionError`` unless ``from_state -> to_state`` is an edge."""
    if to_state not in table.get(from_state, frozenset()):
        raise InvalidTransitionError(
            entity_type, entity_id, from_state.value, to_state.value,
        )


def is_terminal(table: Mapping[Any, frozenset[Any]], state: Enum) -> bool:
    """A state is terminal when it has no outgoing edges."""
    return not table.get(state)
