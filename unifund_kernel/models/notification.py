"""
Module: unifund_kernel.models.notification
Responsibility: ORM persistence for notifications written by workflow
    transitions.  The engine only inserts; the read flag belongs to the
    presentation layer.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from unifund_kernel.db.base import Base, UTCDateTime, UUIDString
from unifund_kernel.domain.dtos import NotificationRecord
from unifund_kernel.domain.lifecycle import NotificationType


class NotificationModel(Base):
    """Persistent notification."""

    __tablename__ = "notifications"

    __table_args__ = (
        CheckConstraint(
            "type IN ('verification_update', 'campaign_update', "
            "'donation_received', 'payment_made', 'profile_update')",
            name="ck_notifications_valid_type",
        ),
        Index("ix_notifications_recipient_created", "recipient_user_id", "created_at"),
    )

    recipient_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Notification {self.id} to={self.recipient_user_id} {self.type}>"

    def to_dto(self) -> NotificationRecord:
        return NotificationRecord(
            id=self.id,
            recipient_user_id=self.recipient_user_id,
            type=NotificationType(self.type),
            title=self.title,
            message=self.message,
            read=self.read,
            created_at=self.created_at,
            payload=dict(self.payload) if self.payload is not None else None,
        )
