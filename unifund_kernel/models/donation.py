"""
Module: unifund_kernel.models.donation
Responsibility: ORM persistence for donation attempts and their settlement.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - amount > 0 (check constraint).
    - payment_reference is unique when present, so a gateway completion
      signal resolves to at most one donation.
    - campaign_id NULL marks a platform-level gift.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from unifund_kernel.db.base import Base, UTCDateTime, UUIDString
from unifund_kernel.domain.dtos import DonationRecord
from unifund_kernel.domain.lifecycle import DonationStatus


class DonationModel(Base):
    """Persistent donation."""

    __tablename__ = "donations"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'received', 'rejected')",
            name="ck_donations_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_donations_positive_amount"),
        Index("ix_donations_campaign_status", "campaign_id", "status"),
    )

    campaign_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    donor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DonationStatus.PENDING.value,
    )
    payment_reference: Mapped[str | None] = mapped_column(
        String(100), nullable=True, unique=True,
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Donation {self.id} campaign={self.campaign_id} "
            f"amount={self.amount} status={self.status}>"
        )

    @property
    def status_enum(self) -> DonationStatus:
        return DonationStatus(self.status)

    def to_dto(self) -> DonationRecord:
        return DonationRecord(
            id=self.id,
            campaign_id=self.campaign_id,
            donor_id=self.donor_id,
            amount=Decimal(self.amount),
            status=self.status_enum,
            created_at=self.created_at,
            payment_reference=self.payment_reference,
            message=self.message,
            is_anonymous=self.is_anonymous,
            decided_at=self.decided_at,
        )
