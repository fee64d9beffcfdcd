"""
BaseService -- abstract base for kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Concrete services receive a
    SQLAlchemy ``Session`` and a ``Clock``; they persist changes with
    ``session.flush()`` and never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's
    transaction and never commit or roll back.  The WorkflowCoordinator
    (or a test harness) owns commit and rollback, which is what makes a
    cascade atomic.
"""

from abc import ABC
from typing import Any

from sqlalchemy.orm import Session

from unifund_kernel.domain.clock import Clock, SystemClock
from unifund_kernel.exceptions import NotFoundError


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _supports_row_locks(self) -> bool:
        return self.session.get_bind().dialect.name == "postgresql"

    def _load(self, model: type, entity_id: Any, entity_type: str, *, lock: bool = True):
        """
        Load a row by primary key or raise NotFoundError.

        With ``lock`` set, the row is read ``FOR UPDATE`` on PostgreSQL and
        refreshed from the database, so the caller works on current state
        inside its transaction.
        """
        if lock and self._supports_row_locks():
            instance = self.session.get(
                model, entity_id, with_for_update=True, populate_existing=True,
            )
        else:
            instance = self.session.get(model, entity_id, populate_existing=lock)
        if instance is None:
            raise NotFoundError(entity_type, entity_id)
        return instance
