"""
Module: unifund_kernel.models.verification
Responsibility: ORM persistence for verification-document submissions.

Architecture position: Kernel > Models.  May import from db/, domain/ and
    exceptions.

Invariants enforced:
    - Append-only ledger: rows are never deleted (ORM listener).
    - A decided request is never re-decided: an UPDATE that changes the
      status of a row whose stored status is terminal is refused (ORM
      listener).  Resubmission creates a new row.
    - status and document_type are restricted by check constraints.

Failure modes:
    - ImmutabilityViolationError on DELETE, or on a status change away
      from a terminal status.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from unifund_kernel.db.base import Base, UTCDateTime, UUIDString
from unifund_kernel.domain.dtos import VerificationRequestRecord
from unifund_kernel.domain.lifecycle import (
    TERMINAL_VERIFICATION_STATUSES,
    DocumentType,
    VerificationStatus,
)
from unifund_kernel.exceptions import ImmutabilityViolationError


class VerificationRequestModel(Base):
    """Persistent verification request.  Append-only."""

    __tablename__ = "verification_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_verification_requests_valid_status",
        ),
        CheckConstraint(
            "document_type IN ('identity', 'enrollment', 'feeStatement', 'academicRecord')",
            name="ck_verification_requests_valid_document_type",
        ),
        Index("ix_verification_requests_student_status", "student_id", "status"),
        Index("ix_verification_requests_submitted", "submitted_at"),
    )

    student_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    document_type: Mapped[str] = mapped_column(String(30), nullable=False)
    document_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VerificationStatus.PENDING.value,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reviewed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<VerificationRequest {self.id} student={self.student_id} "
            f"{self.document_type} status={self.status}>"
        )

    @property
    def status_enum(self) -> VerificationStatus:
        return VerificationStatus(self.status)

    def to_dto(self) -> VerificationRequestRecord:
        return VerificationRequestRecord(
            id=self.id,
            student_id=self.student_id,
            document_type=DocumentType(self.document_type),
            document_url=self.document_url,
            status=self.status_enum,
            submitted_at=self.submitted_at,
            rejection_reason=self.rejection_reason,
            reviewed_at=self.reviewed_at,
            reviewed_by=self.reviewed_by,
        )


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(VerificationRequestModel, "before_delete")
def prevent_verification_delete(mapper, connection, target):
    """Verification requests are an audit trail and are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="VerificationRequest",
        entity_id=str(target.id),
        reason="Verification requests are append-only -- cannot delete",
    )


@event.listens_for(VerificationRequestModel, "before_update")
def prevent_terminal_redecision(mapper, connection, target):
    """A decided request keeps its decision forever."""
    history = inspect(target).attrs.status.history
    if not history.deleted:
        return
    previous = VerificationStatus(history.deleted[0])
    if previous in TERMINAL_VERIFICATION_STATUSES:
        raise ImmutabilityViolationError(
            entity_type="VerificationRequest",
            entity_id=str(target.id),
            reason=f"Request already {previous.value} -- cannot re-decide",
        )
