"""
NotificationDispatcher -- writes notification rows for workflow transitions.

Responsibility:
    Creates exactly one Notification row per call to ``notify`` (and one
    per admin for ``notify_admins``), inside the caller's transaction, so
    a rolled-back cascade leaves no notification behind.

Architecture position:
    Kernel > Services.  Called only by the WorkflowCoordinator as the
    last step of a cascade.

Non-goals:
    Delivery, display and read-state management belong to the
    presentation layer.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select

from unifund_kernel.domain.dtos import NotificationRecord
from unifund_kernel.domain.lifecycle import NotificationType, Role
from unifund_kernel.exceptions import ValidationError
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.notification import NotificationModel
from unifund_kernel.models.profile import ProfileModel
from unifund_kernel.services.base import BaseService

logger = get_logger("services.notifications")


class NotificationDispatcher(BaseService):
    """Creates notification records.  Flush only."""

    def notify(
        self,
        recipient_user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> NotificationRecord:
        if not title or not message:
            raise ValidationError("notification", "title and message are required")

        model = NotificationModel(
            recipient_user_id=recipient_user_id,
            type=NotificationType(type).value,
            title=title,
            message=message,
            payload=payload,
            read=False,
            created_at=self.clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "notification_created",
            extra={
                "notification_id": str(model.id),
                "recipient_user_id": str(recipient_user_id),
                "notification_type": model.type,
            },
        )
        return model.to_dto()

    def notify_admins(
        self,
        type: NotificationType,
        title: str,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> list[NotificationRecord]:
        """One notification per admin profile.  No admins means no rows."""
        admin_ids = self.session.execute(
            select(ProfileModel.id)
            .where(ProfileModel.role == Role.ADMIN.value)
            .order_by(ProfileModel.created_at, ProfileModel.id)
        ).scalars().all()

        if not admin_ids:
            logger.warning("notify_admins_no_recipients", extra={"title": title})

        return [
            self.notify(admin_id, type, title, message, payload)
            for admin_id in admin_ids
        ]
