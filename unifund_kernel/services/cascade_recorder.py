"""
CascadeRecorder -- append-only log of applied cascades.

Responsibility:
    Writes one CascadeRun row per committed administrator action, in the
    same transaction as the cascade, and answers "was this already
    applied?" for targets that no longer exist (deleted campaigns,
    restored archives).

Architecture position:
    Kernel > Services.  Called only by the WorkflowCoordinator.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from unifund_kernel.domain.dtos import CascadeRunRecord, CascadeStep
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.cascade import CascadeRunModel
from unifund_kernel.services.base import BaseService

logger = get_logger("services.cascade_recorder")


class CascadeRecorder(BaseService):

    def record(
        self,
        operation: str,
        target_type: str,
        target_id: UUID,
        actor_id: UUID,
        steps: Sequence[CascadeStep],
        notification_count: int,
    ) -> CascadeRunRecord:
        model = CascadeRunModel(
            operation=operation,
            target_type=target_type,
            target_id=target_id,
            actor_id=actor_id,
            steps=[step.to_dict() for step in steps],
            notification_count=notification_count,
            applied_at=self.clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "cascade_recorded",
            extra={
                "cascade_id": str(model.id),
                "operation": operation,
                "target_id": str(target_id),
                "step_count": len(steps),
            },
        )
        return model.to_dto()

    def find_applied(self, operation: str, target_id: UUID) -> CascadeRunRecord | None:
        """Most recent run of ``operation`` on ``target_id``, if any."""
        model = self.session.execute(
            select(CascadeRunModel)
            .where(CascadeRunModel.operation == operation)
            .where(CascadeRunModel.target_id == target_id)
            .order_by(CascadeRunModel.applied_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def history(self, target_id: UUID) -> list[CascadeRunRecord]:
        rows = self.session.execute(
            select(CascadeRunModel)
            .where(CascadeRunModel.target_id == target_id)
            .order_by(CascadeRunModel.applied_at, CascadeRunModel.id)
        ).scalars()
        return [r.to_dto() for r in rows]
