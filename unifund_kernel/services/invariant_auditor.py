"""
InvariantAuditor -- after-the-fact check of the data-level invariants.

Responsibility:
    Recomputes the two invariants that span tables and reports every row
    that breaks them:

    * active_implies_approved: no active campaign is owned by a student
      whose verification_status is not approved.
    * raised_equals_received: every campaign's raised_amount equals the
      sum of its received donations.

Architecture position:
    Kernel > Services.  Read-only; used by tests after every scenario and
    available to operators as a health check.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func, select

from unifund_kernel.domain.lifecycle import CampaignStatus, DonationStatus, IdentityStatus
from unifund_kernel.invariants import WorkflowInvariant
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.campaign import CampaignModel
from unifund_kernel.models.donation import DonationModel
from unifund_kernel.models.profile import StudentModel
from unifund_kernel.services.base import BaseService

logger = get_logger("services.invariant_auditor")


@dataclass(frozen=True)
class InvariantViolation:
    invariant: WorkflowInvariant
    entity_type: str
    entity_id: str
    detail: str


@dataclass(frozen=True)
class AuditReport:
    violations: tuple[InvariantViolation, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.violations


class InvariantAuditor(BaseService):

    def check_active_implies_approved(self) -> list[InvariantViolation]:
        rows = self.session.execute(
            select(CampaignModel.id, CampaignModel.student_id, StudentModel.verification_status)
            .outerjoin(StudentModel, StudentModel.id == CampaignModel.student_id)
            .where(CampaignModel.status == CampaignStatus.ACTIVE.value)
        ).all()
        return [
            InvariantViolation(
                WorkflowInvariant.ACTIVE_IMPLIES_APPROVED,
                "Campaign",
                str(campaign_id),
                f"owner {student_id} is {status or 'missing'}",
            )
            for campaign_id, student_id, status in rows
            if status != IdentityStatus.APPROVED.value
        ]

    def check_raised_equals_received(self) -> list[InvariantViolation]:
        received = (
            select(
                DonationModel.campaign_id.label("campaign_id"),
                func.sum(DonationModel.amount).label("total"),
            )
            .where(DonationModel.status == DonationStatus.RECEIVED.value)
            .group_by(DonationModel.campaign_id)
            .subquery()
        )
        rows = self.session.execute(
            select(CampaignModel.id, CampaignModel.raised_amount, received.c.total)
            .outerjoin(received, received.c.campaign_id == CampaignModel.id)
        ).all()

        violations = []
        for campaign_id, raised, total in rows:
            expected = Decimal(str(total or 0)).quantize(Decimal("0.01"))
            actual = Decimal(str(raised)).quantize(Decimal("0.01"))
            if actual != expected:
                violations.append(
                    InvariantViolation(
                        WorkflowInvariant.RAISED_EQUALS_RECEIVED,
                        "Campaign",
                        str(campaign_id),
                        f"raised {actual} != received {expected}",
                    )
                )
        return violations

    def audit(self) -> AuditReport:
        violations = (
            self.check_active_implies_approved()
            + self.check_raised_equals_received()
        )
        for v in violations:
            logger.warning(
                "invariant_violation",
                extra={
                    "invariant": v.invariant.value,
                    "entity_type": v.entity_type,
                    "entity_id": v.entity_id,
                    "detail": v.detail,
                },
            )
        return AuditReport(tuple(violations))
