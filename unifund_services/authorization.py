"""
unifund_services.authorization -- the single authorization gate.

Responsibility:
    Check that an actor may perform a workflow operation.  Every public
    WorkflowCoordinator method calls ``AuthorizationGate.require`` before
    touching any state.

Architecture position:
    Services layer.  Consumes RbacSettings from unifund_config.

Invariants:
    - The kernel stays actor-agnostic; identity is resolved by the caller
      and arrives here as an ``Actor``.
    - Student-scoped operations additionally require the actor to be the
      owning student (admins and the system actor excepted).
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from unifund_config.schema import RbacSettings
from unifund_kernel.exceptions import UnauthorizedError
from unifund_kernel.logging_config import get_logger

logger = get_logger("services.authorization")

SYSTEM_ROLE = "system"
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")

# operation -> permission string granted through rbac.roles in settings
OPERATION_TO_PERMISSION: dict[str, str] = {
    "approve_verification": "verification.approve",
    "reject_verification": "verification.reject",
    "document_review_url": "verification.review",
    "approve_campaign": "campaign.approve",
    "reject_campaign": "campaign.reject",
    "delete_campaign": "campaign.delete",
    "approve_donation": "donation.approve",
    "reject_donation": "donation.reject",
    "archive_profile": "profile.archive",
    "restore_profile": "profile.restore",
    "purge_expired_archives": "archive.purge",
    "submit_verification": "verification.submit",
    "create_campaign": "campaign.create",
    "submit_donation": "donation.submit",
    "handle_payment_completed": "payment.complete",
}

_OWNER_EXEMPT_ROLES = frozenset({"admin", SYSTEM_ROLE})


@dataclass(frozen=True)
class Actor:
    """Who is calling, as resolved by the caller's authentication layer."""

    actor_id: UUID
    role: str

    @classmethod
    def system(cls) -> "Actor":
        """The actor used for gateway callbacks and scheduled jobs."""
        return cls(SYSTEM_ACTOR_ID, SYSTEM_ROLE)


def get_permission_for_operation(operation: str) -> str | None:
    return OPERATION_TO_PERMISSION.get(operation)


def check_permission(
    rbac: RbacSettings,
    actor: Actor,
    required_permission: str,
    owner_id: UUID | None = None,
) -> tuple[bool, str]:
    """
    Returns:
        (allowed, reason).  reason is empty when allowed.
    """
    if required_permission not in rbac.permissions_for(actor.role):
        return (False, f"permission '{required_permission}' not granted to role '{actor.role}'")
    if (
        owner_id is not None
        and actor.role not in _OWNER_EXEMPT_ROLES
        and actor.actor_id != owner_id
    ):
        return (False, "actor does not own the target")
    return (True, "")


class AuthorizationGate:
    """Raises UnauthorizedError unless the actor may run the operation."""

    def __init__(self, rbac: RbacSettings):
        self._rbac = rbac

    def require(
        self,
        actor: Actor | None,
        operation: str,
        owner_id: UUID | None = None,
    ) -> str:
        permission = get_permission_for_operation(operation)
        if permission is None:
            raise UnauthorizedError(
                getattr(actor, "actor_id", None), operation, "unknown operation",
            )
        if actor is None:
            raise UnauthorizedError(None, permission, "no actor supplied")

        allowed, reason = check_permission(self._rbac, actor, permission, owner_id)
        if not allowed:
            logger.warning(
                "authorization_denied",
                extra={
                    "actor_id": str(actor.actor_id),
                    "role": actor.role,
                    "operation": operation,
                    "permission": permission,
                    "reason": reason,
                },
            )
            raise UnauthorizedError(actor.actor_id, permission, reason)
        return permission
