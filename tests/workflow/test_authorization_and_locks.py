"""
Tests for the authorization gate and the per-entity lock registry.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest

from unifund_kernel.exceptions import UnauthorizedError
from unifund_services.authorization import (
    OPERATION_TO_PERMISSION,
    SYSTEM_ACTOR_ID,
    Actor,
    AuthorizationGate,
    check_permission,
)
from unifund_services.locks import EntityLockRegistry


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorizationGate:
    @pytest.fixture
    def gate(self, settings):
        return AuthorizationGate(settings.rbac)

    @pytest.mark.parametrize(
        "operation",
        [
            "approve_verification",
            "reject_verification",
            "approve_campaign",
            "reject_campaign",
            "delete_campaign",
            "approve_donation",
            "reject_donation",
            "archive_profile",
            "restore_profile",
        ],
    )
    def test_admin_operations(self, gate, operation):
        admin = Actor(uuid4(), "admin")
        assert gate.require(admin, operation) == OPERATION_TO_PERMISSION[operation]

        with pytest.raises(UnauthorizedError):
            gate.require(Actor(uuid4(), "student"), operation)
        with pytest.raises(UnauthorizedError):
            gate.require(Actor(uuid4(), "donor"), operation)

    def test_student_acts_on_own_records_only(self, gate):
        student = Actor(uuid4(), "student")

        gate.require(student, "create_campaign", owner_id=student.actor_id)
        with pytest.raises(UnauthorizedError) as exc_info:
            gate.require(student, "create_campaign", owner_id=uuid4())
        assert exc_info.value.permission == "campaign.create"

    def test_system_actor_completes_payments(self, gate):
        system = Actor.system()
        assert system.actor_id == SYSTEM_ACTOR_ID
        gate.require(system, "handle_payment_completed")
        gate.require(system, "purge_expired_archives")

    def test_unknown_operation(self, gate):
        with pytest.raises(UnauthorizedError):
            gate.require(Actor(uuid4(), "admin"), "drop_database")

    def test_missing_actor(self, gate):
        with pytest.raises(UnauthorizedError):
            gate.require(None, "approve_campaign")

    def test_denial_is_logged(self, gate, captured_logs):
        with pytest.raises(UnauthorizedError):
            gate.require(Actor(uuid4(), "donor"), "approve_campaign")

        denied = [r for r in captured_logs() if r["message"] == "authorization_denied"]
        assert denied and denied[0]["permission"] == "campaign.approve"

    def test_check_permission_reason(self, settings):
        allowed, reason = check_permission(
            settings.rbac, Actor(uuid4(), "donor"), "campaign.approve",
        )
        assert not allowed
        assert "not granted" in reason


# ---------------------------------------------------------------------------
# Locks
# ---------------------------------------------------------------------------


class TestEntityLockRegistry:
    def test_ordered_dedups_and_drops_none(self):
        a, b = uuid4(), uuid4()
        keys = EntityLockRegistry.ordered(
            [("student", a), ("campaign", b), ("student", a), ("donation", None)]
        )
        assert keys == sorted({("student", str(a)), ("campaign", str(b))})

    def test_same_key_same_lock(self):
        registry = EntityLockRegistry()
        entity = uuid4()
        assert registry.lock_for("campaign", entity) is registry.lock_for("campaign", str(entity))

    def test_locks_released_on_error(self):
        registry = EntityLockRegistry()
        entity = uuid4()

        with pytest.raises(RuntimeError):
            with registry.hold([("campaign", entity)]):
                raise RuntimeError("boom")

        assert not registry.lock_for("campaign", entity).locked()

    @pytest.mark.slow_locks
    def test_overlapping_holders_serialize(self):
        registry = EntityLockRegistry()
        shared = uuid4()
        inside = []
        overlap = threading.Event()
        barrier = threading.Barrier(2)

        def worker(own):
            barrier.wait()
            with registry.hold([("student", shared), ("campaign", own)]):
                if inside:
                    overlap.set()
                inside.append(own)
                time.sleep(0.05)
                inside.remove(own)

        with ThreadPoolExecutor(max_workers=2) as pool:
            list(pool.map(worker, [uuid4(), uuid4()]))

        assert not overlap.is_set()
