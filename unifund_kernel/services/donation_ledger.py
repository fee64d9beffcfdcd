"""
DonationLedger -- donation attempts and their settlement.

Responsibility:
    Records pending donations and applies the single settlement decision
    to each.  A donation that becomes received is credited to its
    campaign in the same unit of work, exactly once.

Architecture position:
    Kernel > Services.  Called by the WorkflowCoordinator.  Uses
    CampaignStateMachine.credit() for the raised total.  Flushes only.

Invariants enforced:
    - pending -> received | rejected, exactly once per donation; received
      and rejected are terminal.
    - The campaign credit happens before the status write, so a credit
      failure leaves the donation pending.
    - Same-outcome re-apply is a no-op and credits nothing.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from unifund_kernel.domain.dtos import DonationRecord, Transitioned
from unifund_kernel.domain.lifecycle import (
    DONATION_OUTCOMES,
    DONATION_TRANSITIONS,
    CampaignStatus,
    Decision,
    DonationStatus,
    check_transition,
    is_terminal,
)
from unifund_kernel.exceptions import InvalidStateError, NotFoundError, ValidationError
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.campaign import CampaignModel
from unifund_kernel.models.donation import DonationModel
from unifund_kernel.services.base import BaseService
from unifund_kernel.services.campaign_state_machine import (
    CampaignStateMachine,
    positive_amount,
)

logger = get_logger("services.donation_ledger")


class DonationLedger(BaseService):
    """Donation ledger and donation state machine."""

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._campaigns = CampaignStateMachine(session, self.clock)

    def get(self, donation_id: UUID) -> DonationRecord:
        return self._load(DonationModel, donation_id, "Donation", lock=False).to_dto()

    def submit(
        self,
        campaign_id: UUID | None,
        amount: Decimal | int | str,
        donor_id: UUID | None = None,
        payment_reference: str | None = None,
        message: str | None = None,
        is_anonymous: bool = False,
        donation_id: UUID | None = None,
    ) -> DonationRecord:
        """
        Record a pending donation.

        ``campaign_id`` None is a platform-level gift.  A campaign donation
        must target an active campaign.

        ``donation_id`` fixes the new row's key.
        """
        amount = positive_amount("amount", amount)

        if campaign_id is not None:
            campaign = self.session.get(CampaignModel, campaign_id)
            if campaign is None:
                raise NotFoundError("Campaign", campaign_id)
            if campaign.status_enum is not CampaignStatus.ACTIVE:
                raise InvalidStateError(
                    "Campaign",
                    campaign_id,
                    current_state=campaign.status,
                    requested="donate",
                    detail="only active campaigns accept donations",
                )

        if payment_reference is not None:
            if not payment_reference.strip():
                raise ValidationError("payment_reference", "must not be blank")
            if self.find_by_payment_reference(payment_reference) is not None:
                raise ValidationError(
                    "payment_reference", f"{payment_reference!r} is already in use",
                )

        model = DonationModel(
            campaign_id=campaign_id,
            donor_id=donor_id,
            amount=amount,
            status=DonationStatus.PENDING.value,
            payment_reference=payment_reference,
            message=message,
            is_anonymous=is_anonymous,
            created_at=self.clock.now(),
        )
        if donation_id is not None:
            model.id = donation_id
        self.session.add(model)
        self.session.flush()

        logger.info(
            "donation_submitted",
            extra={
                "donation_id": str(model.id),
                "campaign_id": str(campaign_id) if campaign_id else None,
                "amount": str(amount),
            },
        )
        return model.to_dto()

    def decide(self, donation_id: UUID, outcome: Decision) -> Transitioned:
        """
        Settle a donation.

        Postconditions:
            - received: the campaign (if any) was credited once with the
              donation amount and decided_at is set.
            - rejected: no money moved.
        """
        outcome = Decision(outcome)
        target = DONATION_OUTCOMES[outcome]
        model = self._load(DonationModel, donation_id, "Donation")
        current = model.status_enum

        if current is target:
            return Transitioned(model.to_dto(), changed=False, previous_status=current.value)
        if is_terminal(DONATION_TRANSITIONS, current):
            raise InvalidStateError(
                "Donation",
                donation_id,
                current_state=current.value,
                requested=target.value,
                detail="donation already settled",
            )
        check_transition(DONATION_TRANSITIONS, "Donation", donation_id, current, target)

        if target is DonationStatus.RECEIVED and model.campaign_id is not None:
            self._campaigns.credit(model.campaign_id, model.amount)

        model.status = target.value
        model.decided_at = self.clock.now()
        self.session.flush()

        logger.info(
            "donation_decided",
            extra={
                "donation_id": str(donation_id),
                "campaign_id": str(model.campaign_id) if model.campaign_id else None,
                "from_status": current.value,
                "to_status": target.value,
                "amount": str(model.amount),
            },
        )
        return Transitioned(model.to_dto(), changed=True, previous_status=current.value)

    def find_by_payment_reference(self, reference: str) -> DonationRecord | None:
        model = self.session.execute(
            select(DonationModel).where(DonationModel.payment_reference == reference)
        ).scalar_one_or_none()
        return model.to_dto() if model else None
