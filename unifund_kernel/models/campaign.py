"""
Module: unifund_kernel.models.campaign
Responsibility: ORM persistence for funding campaigns.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - goal_amount > 0 and raised_amount >= 0 (check constraints).
    - status restricted to the CampaignStatus vocabulary.
    - raised_amount is only ever changed by CampaignStateMachine.credit(),
      which issues an atomic SQL increment.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from unifund_kernel.db.base import Base, UTCDateTime, UUIDString
from unifund_kernel.domain.dtos import CampaignRecord
from unifund_kernel.domain.lifecycle import CampaignStatus


class CampaignModel(Base):
    """Persistent campaign."""

    __tablename__ = "campaigns"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'rejected', 'deleted')",
            name="ck_campaigns_valid_status",
        ),
        CheckConstraint("goal_amount > 0", name="ck_campaigns_positive_goal"),
        CheckConstraint("raised_amount >= 0", name="ck_campaigns_non_negative_raised"),
        Index("ix_campaigns_student_status", "student_id", "status"),
    )

    student_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    story: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="other")
    goal_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    raised_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0"),
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CampaignStatus.PENDING.value,
    )
    document_urls: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Campaign {self.id} student={self.student_id} "
            f"status={self.status} raised={self.raised_amount}/{self.goal_amount}>"
        )

    @property
    def status_enum(self) -> CampaignStatus:
        return CampaignStatus(self.status)

    def to_dto(self, status: CampaignStatus | None = None) -> CampaignRecord:
        """Convert to a DTO; ``status`` overrides the stored value (hard deletes)."""
        return CampaignRecord(
            id=self.id,
            student_id=self.student_id,
            title=self.title,
            story=self.story,
            category=self.category,
            goal_amount=Decimal(self.goal_amount),
            raised_amount=Decimal(self.raised_amount),
            currency=self.currency,
            status=status or self.status_enum,
            document_urls=tuple(self.document_urls or ()),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
