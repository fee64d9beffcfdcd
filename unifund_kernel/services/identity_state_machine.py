"""
IdentityStateMachine -- a student's cached verification status.

Responsibility:
    Owns every write to ``students.verification_status``.  The status is
    a cache of the most recent decision, so the machine is cyclic and
    re-entrant: a rejected or approved student can be sent back to
    pending by a resubmission, an archive, or a campaign deletion.

Architecture position:
    Kernel > Services.  Called by the WorkflowCoordinator and by
    ArchivalManager.  Flushes only.

Invariants enforced:
    - Ordinary transitions follow IDENTITY_TRANSITIONS.
    - ``force=True`` lets a cascade set approved/rejected from any state.
      Only the coordinator passes it; the active-campaign invariant is
      the coordinator's to keep.
"""

from __future__ import annotations

from uuid import UUID

from unifund_kernel.domain.dtos import Transitioned
from unifund_kernel.domain.lifecycle import (
    IDENTITY_TRANSITIONS,
    IdentityStatus,
    check_transition,
)
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.profile import StudentModel
from unifund_kernel.services.base import BaseService

logger = get_logger("services.identity")


class IdentityStateMachine(BaseService):

    def mark_pending(self, student_id: UUID) -> Transitioned:
        return self._transition(student_id, IdentityStatus.PENDING, force=False)

    def approve(self, student_id: UUID, force: bool = False) -> Transitioned:
        return self._transition(student_id, IdentityStatus.APPROVED, force=force)

    def reject(self, student_id: UUID, force: bool = False) -> Transitioned:
        return self._transition(student_id, IdentityStatus.REJECTED, force=force)

    def force(self, student_id: UUID, status: IdentityStatus) -> Transitioned:
        return self._transition(student_id, IdentityStatus(status), force=True)

    def current(self, student_id: UUID) -> IdentityStatus:
        return self._load(StudentModel, student_id, "Student", lock=False).status_enum

    def _transition(
        self, student_id: UUID, target: IdentityStatus, force: bool,
    ) -> Transitioned:
        student = self._load(StudentModel, student_id, "Student")
        current = student.status_enum

        if current is target:
            return Transitioned(student.to_dto(), changed=False, previous_status=current.value)
        if not force:
            check_transition(IDENTITY_TRANSITIONS, "Student", student_id, current, target)

        student.verification_status = target.value
        student.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "identity_status_changed",
            extra={
                "student_id": str(student_id),
                "from_status": current.value,
                "to_status": target.value,
                "forced": force,
            },
        )
        return Transitioned(student.to_dto(), changed=True, previous_status=current.value)
