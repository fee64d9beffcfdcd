"""
Typed Exception Hierarchy for the UniFund workflow kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every administrator action either fully applies, partially applies, or does
not apply at all, and the caller must be able to tell which without parsing
message strings. So:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (entity ids, states, reasons)

Example - WRONG way to handle errors:
    try:
        coordinator.approve_campaign(actor, campaign_id)
    except Exception as e:
        if "not pending" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way (what this module enables):
    try:
        coordinator.approve_campaign(actor, campaign_id)
    except InvalidStateError as e:
        api_response(code=e.code, entity=e.entity_type, state=e.current_state)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    UnifundError (base)
    |
    +-- NotFoundError
    +-- InvalidStateError
    |   +-- InvalidTransitionError
    |   +-- ExpiredArchiveError
    +-- UnauthorizedError
    +-- ValidationError
    +-- DependencyError
    +-- PartialCascadeError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|--------------------------------------------------
NOT_FOUND               | Entity id does not resolve
INVALID_STATE           | Entity not in a state permitting the request
INVALID_TRANSITION      | Lifecycle table has no edge from -> to
EXPIRED_ARCHIVE         | Restore attempted after scheduled deletion
UNAUTHORIZED            | Actor lacks the permission for the operation
VALIDATION_ERROR        | Missing reason, non-positive amount, bad type
DEPENDENCY_UNAVAILABLE  | Storage / gateway unreachable after retries
PARTIAL_CASCADE         | Some cascade steps applied, rollback not confirmed
IMMUTABILITY_VIOLATION  | Attempt to delete an append-only ledger row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Only DependencyError is retriable, and the coordinator has already
   retried it under the bounded policy before it reaches you.

2. PartialCascadeError must be surfaced to an operator. It lists the
   steps that were flushed before the failure:

    except PartialCascadeError as e:
        alert_operator(e.operation, e.applied_steps, e.cause)

3. Everything else means "nothing was applied".
"""

from __future__ import annotations

from typing import Any


class UnifundError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "UNIFUND_ERROR"


class NotFoundError(UnifundError):
    """An entity id did not resolve."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvalidStateError(UnifundError):
    """Entity is not in a state that permits the requested operation."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        current_state: str,
        requested: str,
        detail: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_state = current_state
        self.requested = requested
        self.detail = detail
        message = (
            f"{entity_type} {entity_id} is '{current_state}', "
            f"cannot apply '{requested}'"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidTransitionError(InvalidStateError):
    """The lifecycle table defines no edge between the two statuses."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: Any, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            entity_type,
            entity_id,
            current_state=from_state,
            requested=to_state,
            detail="no such transition",
        )


class ExpiredArchiveError(InvalidStateError):
    """An archived profile was restored after its scheduled deletion time."""

    code: str = "EXPIRED_ARCHIVE"

    def __init__(self, archive_id: Any, scheduled_deletion_at: Any, now: Any):
        self.archive_id = str(archive_id)
        self.scheduled_deletion_at = str(scheduled_deletion_at)
        self.now = str(now)
        super().__init__(
            "ArchivedProfile",
            archive_id,
            current_state="expired",
            requested="restore",
            detail=f"grace period ended at {scheduled_deletion_at}",
        )


class UnauthorizedError(UnifundError):
    """The caller lacks the permission required for the operation."""

    code: str = "UNAUTHORIZED"

    def __init__(self, actor_id: Any, permission: str, reason: str = ""):
        self.actor_id = str(actor_id)
        self.permission = permission
        self.reason = reason
        message = f"Actor {actor_id} is not allowed '{permission}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ValidationError(UnifundError):
    """Input rejected before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class DependencyError(UnifundError):
    """
    A collaborator (database, document store, payment gateway) stayed
    unreachable through every retry attempt.
    """

    code: str = "DEPENDENCY_UNAVAILABLE"

    def __init__(self, dependency: str, attempts: int, cause: BaseException | None = None):
        self.dependency = dependency
        self.attempts = attempts
        self.cause = repr(cause) if cause is not None else None
        super().__init__(
            f"{dependency} unavailable after {attempts} attempt(s): {cause!r}"
        )


class PartialCascadeError(UnifundError):
    """
    Some, but possibly not all, steps of a cascade were applied.

    Raised only when the unit of work could not be confirmed as rolled
    back (rollback failure, indeterminate commit).  Never absorbed.
    """

    code: str = "PARTIAL_CASCADE"

    def __init__(
        self,
        operation: str,
        target_id: Any,
        applied_steps: list[dict[str, Any]],
        cause: BaseException | None = None,
    ):
        self.operation = operation
        self.target_id = str(target_id)
        self.applied_steps = applied_steps
        self.cause = repr(cause) if cause is not None else None
        super().__init__(
            f"Cascade {operation} on {target_id} partially applied "
            f"({len(applied_steps)} step(s)) before failure: {cause!r}"
        )


class ImmutabilityViolationError(UnifundError):
    """Attempt to delete or rewrite an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
