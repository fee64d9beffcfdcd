"""
Module: unifund_kernel.models.cascade
Responsibility: ORM persistence for applied cascades.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Append-only: a cascade run is written once, in the same transaction
      as the cascade it describes, and never updated or deleted.

Audit relevance:
    One row per committed administrator action: who did what to which
    target, and every entity status change it caused.  Also the source of
    truth for idempotent re-invocation on targets that were hard-removed
    (deleted campaigns, restored archives).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from unifund_kernel.db.base import Base, UTCDateTime, UUIDString
from unifund_kernel.domain.dtos import CascadeRunRecord, CascadeStep
from unifund_kernel.exceptions import ImmutabilityViolationError


class CascadeRunModel(Base):
    """Persistent record of one applied cascade."""

    __tablename__ = "cascade_runs"

    __table_args__ = (
        Index("ix_cascade_runs_operation_target", "operation", "target_id"),
        Index("ix_cascade_runs_applied", "applied_at"),
    )

    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    target_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    steps: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notification_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    applied_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<CascadeRun {self.operation} on {self.target_type}:{self.target_id}>"

    def to_dto(self) -> CascadeRunRecord:
        return CascadeRunRecord(
            id=self.id,
            operation=self.operation,
            target_type=self.target_type,
            target_id=self.target_id,
            actor_id=self.actor_id,
            steps=tuple(
                CascadeStep(
                    entity_type=s["entity_type"],
                    entity_id=UUID(s["entity_id"]),
                    from_state=s.get("from_state"),
                    to_state=s["to_state"],
                )
                for s in (self.steps or [])
            ),
            notification_count=self.notification_count,
            applied_at=self.applied_at,
        )


@event.listens_for(CascadeRunModel, "before_update")
def prevent_cascade_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="CascadeRun",
        entity_id=str(target.id),
        reason="Cascade runs are immutable -- cannot modify",
    )


@event.listens_for(CascadeRunModel, "before_delete")
def prevent_cascade_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="CascadeRun",
        entity_id=str(target.id),
        reason="Cascade runs are immutable -- cannot delete",
    )
