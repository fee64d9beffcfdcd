"""
CampaignStateMachine -- campaign publication status and raised total.

Responsibility:
    Creates campaigns (pending), moves them through the lifecycle, removes
    deleted campaigns, and credits received donations to the raised total.

Architecture position:
    Kernel > Services.  Called by the WorkflowCoordinator and by
    DonationLedger (credit only).  Flushes only.

Invariants enforced:
    - Transitions follow CAMPAIGN_TRANSITIONS; rejected and deleted are
      terminal, and active is reachable only from pending.
    - raised_amount changes only through ``credit``, which issues a single
      atomic ``UPDATE ... SET raised_amount = raised_amount + :amount``
      guarded on status = 'active'.  Never a read-modify-write.
    - Delete is a hard removal of the row; the returned snapshot reports
      status deleted.

Failure modes:
    - NotFoundError: unknown campaign or student.
    - InvalidTransitionError: e.g. activating a rejected campaign.
    - InvalidStateError: crediting a campaign that is not active.
    - ValidationError: empty title, non-positive goal or credit amount.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update

from unifund_kernel.db.types import to_money
from unifund_kernel.domain.dtos import CampaignRecord, Transitioned
from unifund_kernel.domain.lifecycle import (
    CAMPAIGN_TRANSITIONS,
    CampaignStatus,
    check_transition,
)
from unifund_kernel.exceptions import InvalidStateError, NotFoundError, ValidationError
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.campaign import CampaignModel
from unifund_kernel.models.profile import StudentModel
from unifund_kernel.services.base import BaseService

logger = get_logger("services.campaigns")


def positive_amount(field: str, value: Decimal | int | str) -> Decimal:
    """Coerce to money and insist on > 0, as a ValidationError."""
    try:
        amount = to_money(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(field, str(exc)) from exc
    if amount <= 0:
        raise ValidationError(field, f"must be positive, got {amount}")
    return amount


class CampaignStateMachine(BaseService):
    """Campaign lifecycle and the raised-amount accumulator."""

    def get(self, campaign_id: UUID) -> CampaignRecord:
        return self._load(CampaignModel, campaign_id, "Campaign", lock=False).to_dto()

    def create(
        self,
        student_id: UUID,
        title: str,
        goal_amount: Decimal | int | str,
        story: str = "",
        category: str = "other",
        currency: str = "ZAR",
        document_urls: Iterable[str] = (),
        campaign_id: UUID | None = None,
    ) -> CampaignRecord:
        """
        Create a pending campaign owned by ``student_id``.

        ``campaign_id`` fixes the new row's key.
        """
        if not title or not title.strip():
            raise ValidationError("title", "must not be empty")
        goal = positive_amount("goal_amount", goal_amount)
        if not currency or len(currency) != 3:
            raise ValidationError("currency", f"expected an ISO 4217 code, got {currency!r}")
        if self.session.get(StudentModel, student_id) is None:
            raise NotFoundError("Student", student_id)

        now = self.clock.now()
        model = CampaignModel(
            student_id=student_id,
            title=title.strip(),
            story=story or "",
            category=category or "other",
            goal_amount=goal,
            raised_amount=Decimal("0.00"),
            currency=currency.upper(),
            status=CampaignStatus.PENDING.value,
            document_urls=list(document_urls),
            created_at=now,
            updated_at=now,
        )
        if campaign_id is not None:
            model.id = campaign_id
        self.session.add(model)
        self.session.flush()

        logger.info(
            "campaign_created",
            extra={
                "campaign_id": str(model.id),
                "student_id": str(student_id),
                "goal_amount": str(goal),
            },
        )
        return model.to_dto()

    def activate(self, campaign_id: UUID) -> Transitioned:
        return self._transition(campaign_id, CampaignStatus.ACTIVE)

    def reject(self, campaign_id: UUID) -> Transitioned:
        return self._transition(campaign_id, CampaignStatus.REJECTED)

    def reject_pending_for_student(self, student_id: UUID) -> list[Transitioned]:
        """Reject every pending campaign the student owns."""
        stmt = (
            select(CampaignModel)
            .where(CampaignModel.student_id == student_id)
            .where(CampaignModel.status == CampaignStatus.PENDING.value)
            .order_by(CampaignModel.created_at, CampaignModel.id)
            .execution_options(populate_existing=True)
        )
        if self._supports_row_locks():
            stmt = stmt.with_for_update()
        return [
            self._apply(model, CampaignStatus.REJECTED)
            for model in self.session.execute(stmt).scalars().all()
        ]

    def delete(self, campaign_id: UUID) -> Transitioned:
        """
        Remove a pending or active campaign.

        Returns a snapshot of the removed row with status deleted.  Its
        donations stay on the ledger.
        """
        model = self._load(CampaignModel, campaign_id, "Campaign")
        current = model.status_enum
        check_transition(
            CAMPAIGN_TRANSITIONS, "Campaign", campaign_id, current, CampaignStatus.DELETED,
        )

        snapshot = model.to_dto(status=CampaignStatus.DELETED)
        self.session.delete(model)
        self.session.flush()

        logger.info(
            "campaign_deleted",
            extra={
                "campaign_id": str(campaign_id),
                "student_id": str(snapshot.student_id),
                "from_status": current.value,
            },
        )
        return Transitioned(snapshot, changed=True, previous_status=current.value)

    def credit(self, campaign_id: UUID, amount: Decimal | int | str) -> Decimal:
        """
        Add ``amount`` to an active campaign's raised total.

        Returns the new raised amount as read back inside the same
        transaction.
        """
        amount = positive_amount("amount", amount)

        result = self.session.execute(
            update(CampaignModel)
            .where(CampaignModel.id == campaign_id)
            .where(CampaignModel.status == CampaignStatus.ACTIVE.value)
            .values(
                raised_amount=CampaignModel.raised_amount + amount,
                updated_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            status = self.session.execute(
                select(CampaignModel.status).where(CampaignModel.id == campaign_id)
            ).scalar_one_or_none()
            if status is None:
                raise NotFoundError("Campaign", campaign_id)
            raise InvalidStateError(
                "Campaign",
                campaign_id,
                current_state=status,
                requested="credit",
                detail="only active campaigns accept donations",
            )

        # The identity map may hold a stale copy of the row.
        cached = self.session.identity_map.get(
            self.session.identity_key(CampaignModel, campaign_id)
        )
        if cached is not None:
            self.session.expire(cached)

        raised = self.session.execute(
            select(CampaignModel.raised_amount).where(CampaignModel.id == campaign_id)
        ).scalar_one()

        logger.info(
            "campaign_credited",
            extra={
                "campaign_id": str(campaign_id),
                "amount": str(amount),
                "raised_amount": str(raised),
            },
        )
        return Decimal(raised)

    def _transition(self, campaign_id: UUID, target: CampaignStatus) -> Transitioned:
        model = self._load(CampaignModel, campaign_id, "Campaign")
        return self._apply(model, target)

    def _apply(self, model: CampaignModel, target: CampaignStatus) -> Transitioned:
        current = model.status_enum
        if current is target:
            return Transitioned(model.to_dto(), changed=False, previous_status=current.value)
        check_transition(CAMPAIGN_TRANSITIONS, "Campaign", model.id, current, target)

        model.status = target.value
        model.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "campaign_status_changed",
            extra={
                "campaign_id": str(model.id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return Transitioned(model.to_dto(), changed=True, previous_status=current.value)
