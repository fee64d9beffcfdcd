"""
Tests for IdentityStateMachine -- the cached student verification status.

Covers ordinary transitions, forced cascade transitions, idempotent
re-application and the cyclic (re-entrant) shape of the machine.
"""

from uuid import uuid4

import pytest

from unifund_kernel.domain.lifecycle import IdentityStatus
from unifund_kernel.exceptions import InvalidTransitionError, NotFoundError
from unifund_kernel.services.identity_state_machine import IdentityStateMachine


@pytest.fixture
def identity(session, deterministic_clock):
    return IdentityStateMachine(session, deterministic_clock)


class TestOrdinaryTransitions:
    def test_unverified_to_pending(self, identity, create_student):
        student_id = create_student(IdentityStatus.UNVERIFIED)

        result = identity.mark_pending(student_id)

        assert result.changed
        assert result.previous_status == "unverified"
        assert result.record.verification_status is IdentityStatus.PENDING

    def test_pending_to_approved(self, identity, create_student):
        student_id = create_student(IdentityStatus.PENDING)

        result = identity.approve(student_id)

        assert result.record.verification_status is IdentityStatus.APPROVED

    @pytest.mark.parametrize("start", [IdentityStatus.APPROVED, IdentityStatus.REJECTED])
    def test_decided_student_can_return_to_pending(self, identity, create_student, start):
        student_id = create_student(start)

        result = identity.mark_pending(student_id)

        assert result.changed
        assert identity.current(student_id) is IdentityStatus.PENDING

    def test_unverified_cannot_be_approved_without_force(self, identity, create_student):
        student_id = create_student(IdentityStatus.UNVERIFIED)

        with pytest.raises(InvalidTransitionError):
            identity.approve(student_id)
        assert identity.current(student_id) is IdentityStatus.UNVERIFIED

    def test_rejected_cannot_jump_to_approved_without_force(self, identity, create_student):
        student_id = create_student(IdentityStatus.REJECTED)

        with pytest.raises(InvalidTransitionError):
            identity.approve(student_id)


class TestForcedTransitions:
    def test_force_approve_from_unverified(self, identity, create_student):
        student_id = create_student(IdentityStatus.UNVERIFIED)

        result = identity.approve(student_id, force=True)

        assert result.changed
        assert result.record.verification_status is IdentityStatus.APPROVED

    def test_force_reject_from_approved(self, identity, create_student):
        student_id = create_student(IdentityStatus.APPROVED)

        result = identity.reject(student_id, force=True)

        assert result.previous_status == "approved"
        assert result.record.verification_status is IdentityStatus.REJECTED

    def test_force_to_explicit_status(self, identity, create_student):
        student_id = create_student(IdentityStatus.REJECTED)

        identity.force(student_id, IdentityStatus.PENDING)

        assert identity.current(student_id) is IdentityStatus.PENDING

    def test_updated_at_moves(self, identity, create_student, deterministic_clock):
        student_id = create_student(IdentityStatus.PENDING)
        deterministic_clock.advance(60)

        result = identity.approve(student_id)

        assert result.record.updated_at == deterministic_clock.now()


class TestIdempotence:
    def test_same_status_is_a_no_op(self, identity, create_student):
        student_id = create_student(IdentityStatus.APPROVED)

        result = identity.approve(student_id, force=True)

        assert not result.changed
        assert result.previous_status == "approved"

    def test_unknown_student(self, identity):
        with pytest.raises(NotFoundError):
            identity.mark_pending(uuid4())
