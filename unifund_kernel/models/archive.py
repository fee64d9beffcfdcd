"""
Module: unifund_kernel.models.archive
Responsibility: ORM persistence for disabled (archived) profiles.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - disabled_at < scheduled_deletion_at (check constraint).
    - At most one archive per original user id.
    - The snapshot is a point-in-time copy; nothing references it live.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from unifund_kernel.db.base import Base, UTCDateTime, UUIDString
from unifund_kernel.domain.dtos import ArchivedProfileRecord
from unifund_kernel.domain.lifecycle import Role


class ArchivedProfileModel(Base):
    """Persistent archive of a disabled profile."""

    __tablename__ = "archived_profiles"

    __table_args__ = (
        CheckConstraint(
            "disabled_at < scheduled_deletion_at",
            name="ck_archived_profiles_grace_window",
        ),
        Index("ix_archived_profiles_scheduled", "scheduled_deletion_at"),
    )

    original_user_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    disabled_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    scheduled_deletion_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return (
            f"<ArchivedProfile {self.id} user={self.original_user_id} "
            f"until={self.scheduled_deletion_at}>"
        )

    def to_dto(self) -> ArchivedProfileRecord:
        return ArchivedProfileRecord(
            id=self.id,
            original_user_id=self.original_user_id,
            role=Role(self.role),
            disabled_at=self.disabled_at,
            scheduled_deletion_at=self.scheduled_deletion_at,
            snapshot=dict(self.snapshot or {}),
        )
