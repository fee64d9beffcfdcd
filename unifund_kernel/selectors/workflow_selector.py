"""
Module: unifund_kernel.selectors.workflow_selector
Responsibility: Read-side queries over the workflow tables: review queues,
    per-student listings, per-campaign donation totals, and platform
    statistics for the admin overview.
Architecture position: Kernel > Selectors.

Audit relevance:
    ``received_total`` is the independent recomputation of a campaign's
    raised amount used by InvariantAuditor.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from unifund_kernel.domain.dtos import (
    ArchivedProfileRecord,
    CampaignRecord,
    DonationRecord,
    NotificationRecord,
    ProfileRecord,
    StudentRecord,
    VerificationRequestRecord,
)
from unifund_kernel.domain.lifecycle import (
    CampaignStatus,
    DonationStatus,
    Role,
    VerificationStatus,
)
from unifund_kernel.models.archive import ArchivedProfileModel
from unifund_kernel.models.campaign import CampaignModel
from unifund_kernel.models.donation import DonationModel
from unifund_kernel.models.notification import NotificationModel
from unifund_kernel.models.profile import ProfileModel, StudentModel
from unifund_kernel.models.verification import VerificationRequestModel
from unifund_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PlatformStats:
    """Counts and totals shown on the admin overview."""

    total_students: int
    verified_students: int
    pending_verifications: int
    active_campaigns: int
    pending_campaigns: int
    total_raised: Decimal
    received_donations: int
    pending_donations: int


class WorkflowSelector(BaseSelector):
    """Read-only queries for the workflow engine."""

    def profile(self, user_id: UUID) -> ProfileRecord | None:
        model = self.session.get(ProfileModel, user_id)
        return model.to_dto() if model else None

    def student(self, student_id: UUID) -> StudentRecord | None:
        model = self.session.get(StudentModel, student_id)
        return model.to_dto() if model else None

    def campaign(self, campaign_id: UUID) -> CampaignRecord | None:
        model = self.session.get(CampaignModel, campaign_id)
        return model.to_dto() if model else None

    def donation(self, donation_id: UUID) -> DonationRecord | None:
        model = self.session.get(DonationModel, donation_id)
        return model.to_dto() if model else None

    def archive_for_user(self, user_id: UUID) -> ArchivedProfileRecord | None:
        model = self.session.execute(
            select(ArchivedProfileModel)
            .where(ArchivedProfileModel.original_user_id == user_id)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def admin_ids(self) -> list[UUID]:
        """Ids of every admin profile, oldest first."""
        return list(
            self.session.execute(
                select(ProfileModel.id)
                .where(ProfileModel.role == Role.ADMIN.value)
                .order_by(ProfileModel.created_at, ProfileModel.id)
            ).scalars()
        )

    def pending_verifications(self) -> list[VerificationRequestRecord]:
        """The admin review queue, oldest submission first."""
        rows = self.session.execute(
            select(VerificationRequestModel)
            .where(VerificationRequestModel.status == VerificationStatus.PENDING.value)
            .order_by(VerificationRequestModel.submitted_at, VerificationRequestModel.id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def requests_for_student(self, student_id: UUID) -> list[VerificationRequestRecord]:
        rows = self.session.execute(
            select(VerificationRequestModel)
            .where(VerificationRequestModel.student_id == student_id)
            .order_by(VerificationRequestModel.submitted_at, VerificationRequestModel.id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def campaigns_for_student(
        self,
        student_id: UUID,
        status: CampaignStatus | None = None,
    ) -> list[CampaignRecord]:
        stmt = select(CampaignModel).where(CampaignModel.student_id == student_id)
        if status is not None:
            stmt = stmt.where(CampaignModel.status == status.value)
        rows = self.session.execute(
            stmt.order_by(CampaignModel.created_at, CampaignModel.id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def campaigns_by_status(self, status: CampaignStatus) -> list[CampaignRecord]:
        rows = self.session.execute(
            select(CampaignModel)
            .where(CampaignModel.status == status.value)
            .order_by(CampaignModel.created_at, CampaignModel.id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def donations_for_campaign(self, campaign_id: UUID) -> list[DonationRecord]:
        rows = self.session.execute(
            select(DonationModel)
            .where(DonationModel.campaign_id == campaign_id)
            .order_by(DonationModel.created_at, DonationModel.id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def received_total(self, campaign_id: UUID) -> Decimal:
        """Sum of received donations for a campaign, recomputed from rows."""
        total = self.session.execute(
            select(func.coalesce(func.sum(DonationModel.amount), 0))
            .where(DonationModel.campaign_id == campaign_id)
            .where(DonationModel.status == DonationStatus.RECEIVED.value)
        ).scalar_one()
        return Decimal(str(total)).quantize(Decimal("0.01"))

    def notifications_for(self, user_id: UUID) -> list[NotificationRecord]:
        rows = self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.recipient_user_id == user_id)
            .order_by(NotificationModel.created_at, NotificationModel.id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def archives_due(self, as_of) -> list[ArchivedProfileRecord]:
        """Archives whose grace period ended strictly before ``as_of``."""
        rows = self.session.execute(
            select(ArchivedProfileModel)
            .where(ArchivedProfileModel.scheduled_deletion_at < as_of)
            .order_by(ArchivedProfileModel.scheduled_deletion_at)
        ).scalars()
        return [r.to_dto() for r in rows]

    def platform_stats(self) -> PlatformStats:
        def count(stmt) -> int:
            return int(self.session.execute(stmt).scalar_one())

        total_raised = self.session.execute(
            select(func.coalesce(func.sum(DonationModel.amount), 0))
            .where(DonationModel.status == DonationStatus.RECEIVED.value)
        ).scalar_one()

        return PlatformStats(
            total_students=count(select(func.count()).select_from(StudentModel)),
            verified_students=count(
                select(func.count()).select_from(StudentModel)
                .where(StudentModel.verification_status == "approved")
            ),
            pending_verifications=count(
                select(func.count()).select_from(VerificationRequestModel)
                .where(VerificationRequestModel.status == VerificationStatus.PENDING.value)
            ),
            active_campaigns=count(
                select(func.count()).select_from(CampaignModel)
                .where(CampaignModel.status == CampaignStatus.ACTIVE.value)
            ),
            pending_campaigns=count(
                select(func.count()).select_from(CampaignModel)
                .where(CampaignModel.status == CampaignStatus.PENDING.value)
            ),
            total_raised=Decimal(str(total_raised)).quantize(Decimal("0.01")),
            received_donations=count(
                select(func.count()).select_from(DonationModel)
                .where(DonationModel.status == DonationStatus.RECEIVED.value)
            ),
            pending_donations=count(
                select(func.count()).select_from(DonationModel)
                .where(DonationModel.status == DonationStatus.PENDING.value)
            ),
        )
