"""
VerificationLedger -- append-only record of verification submissions.

Responsibility:
    Appends pending verification requests and applies a single decision
    to each one.  Resubmission after a decision is a new row; a decided
    row keeps its decision forever.

Architecture position:
    Kernel > Services.  Called by the WorkflowCoordinator.  Flushes only.

Invariants enforced:
    - pending -> approved | rejected, exactly once per request.
    - Re-applying the outcome a request already has is a no-op
      (``Transitioned.changed`` is False).
    - A different outcome on a decided request raises InvalidStateError.
    - A rejection carries a non-empty reason.

Failure modes:
    - NotFoundError: unknown request or student id.
    - ValidationError: unknown document type, empty url, missing reason.
    - InvalidStateError: conflicting decision on a decided request.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from unifund_kernel.domain.dtos import Transitioned, VerificationRequestRecord
from unifund_kernel.domain.lifecycle import (
    VERIFICATION_OUTCOMES,
    VERIFICATION_TRANSITIONS,
    Decision,
    DocumentType,
    VerificationStatus,
    check_transition,
    is_terminal,
)
from unifund_kernel.exceptions import InvalidStateError, NotFoundError, ValidationError
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.profile import StudentModel
from unifund_kernel.models.verification import VerificationRequestModel
from unifund_kernel.services.base import BaseService

logger = get_logger("services.verification_ledger")


def parse_document_type(value: str | DocumentType) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError as exc:
        raise ValidationError("document_type", f"unknown document type {value!r}") from exc


class VerificationLedger(BaseService):
    """Append-only verification ledger."""

    def get(self, request_id: UUID) -> VerificationRequestRecord:
        return self._load(
            VerificationRequestModel, request_id, "VerificationRequest", lock=False,
        ).to_dto()

    def submit(
        self,
        student_id: UUID,
        document_type: str | DocumentType,
        document_url: str,
        request_id: UUID | None = None,
    ) -> VerificationRequestRecord:
        """Append a pending request for ``student_id``, keyed by ``request_id`` when given."""
        doc_type = parse_document_type(document_type)
        if not document_url or not document_url.strip():
            raise ValidationError("document_url", "must not be empty")
        if self.session.get(StudentModel, student_id) is None:
            raise NotFoundError("Student", student_id)

        model = VerificationRequestModel(
            student_id=student_id,
            document_type=doc_type.value,
            document_url=document_url.strip(),
            status=VerificationStatus.PENDING.value,
            submitted_at=self.clock.now(),
        )
        if request_id is not None:
            model.id = request_id
        self.session.add(model)
        self.session.flush()

        logger.info(
            "verification_submitted",
            extra={
                "request_id": str(model.id),
                "student_id": str(student_id),
                "document_type": doc_type.value,
            },
        )
        return model.to_dto()

    def decide(
        self,
        request_id: UUID,
        outcome: Decision,
        reason: str | None = None,
        reviewer_id: UUID | None = None,
    ) -> Transitioned:
        """
        Apply ``outcome`` to a request.

        Postconditions:
            - On change: status is terminal, reviewed_at is set, and for a
              rejection rejection_reason holds ``reason``.
            - On a same-outcome re-apply nothing is written.
        """
        outcome = Decision(outcome)
        if outcome is Decision.REJECT and not (reason and reason.strip()):
            raise ValidationError("reason", "a rejection needs a reason")

        model = self._load(VerificationRequestModel, request_id, "VerificationRequest")
        return self._apply(model, outcome, reason, reviewer_id)

    def pending_for_student(self, student_id: UUID) -> list[VerificationRequestRecord]:
        return [m.to_dto() for m in self._pending_models(student_id)]

    def decide_all_pending(
        self,
        student_id: UUID,
        outcome: Decision,
        reason: str | None = None,
        reviewer_id: UUID | None = None,
    ) -> list[Transitioned]:
        """Apply ``outcome`` to every pending request of a student."""
        outcome = Decision(outcome)
        if outcome is Decision.REJECT and not (reason and reason.strip()):
            raise ValidationError("reason", "a rejection needs a reason")
        return [
            self._apply(model, outcome, reason, reviewer_id)
            for model in self._pending_models(student_id, lock=True)
        ]

    def _pending_models(
        self, student_id: UUID, lock: bool = False,
    ) -> list[VerificationRequestModel]:
        stmt = (
            select(VerificationRequestModel)
            .where(VerificationRequestModel.student_id == student_id)
            .where(VerificationRequestModel.status == VerificationStatus.PENDING.value)
            .order_by(VerificationRequestModel.submitted_at, VerificationRequestModel.id)
            .execution_options(populate_existing=True)
        )
        if lock and self._supports_row_locks():
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars())

    def _apply(
        self,
        model: VerificationRequestModel,
        outcome: Decision,
        reason: str | None,
        reviewer_id: UUID | None,
    ) -> Transitioned:
        target = VERIFICATION_OUTCOMES[outcome]
        current = model.status_enum

        if current is target:
            return Transitioned(model.to_dto(), changed=False, previous_status=current.value)
        if is_terminal(VERIFICATION_TRANSITIONS, current):
            raise InvalidStateError(
                "VerificationRequest",
                model.id,
                current_state=current.value,
                requested=target.value,
                detail="request already decided",
            )
        check_transition(
            VERIFICATION_TRANSITIONS, "VerificationRequest", model.id, current, target,
        )

        model.status = target.value
        model.reviewed_at = self.clock.now()
        model.reviewed_by = reviewer_id
        if target is VerificationStatus.REJECTED:
            model.rejection_reason = reason.strip()
        self.session.flush()

        logger.info(
            "verification_decided",
            extra={
                "request_id": str(model.id),
                "student_id": str(model.student_id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return Transitioned(model.to_dto(), changed=True, previous_status=current.value)
