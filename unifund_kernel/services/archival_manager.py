"""
ArchivalManager -- soft-delete of profiles with a restore grace period.

Responsibility:
    Disables a profile by moving it out of the active tables into an
    ArchivedProfile snapshot, restores it within the grace period, and
    permanently purges archives whose grace period has passed.

Architecture position:
    Kernel > Services.  Called by the WorkflowCoordinator, which holds
    the per-user and per-archive locks.  Flushes only.

Invariants enforced:
    - disabled_at < scheduled_deletion_at = disabled_at + grace period.
    - A student is forced to pending before the snapshot is taken, so a
      restored student always comes back pending.
    - A student that owns an active campaign cannot be archived (the
      campaign would outlive its owner's approval).
    - restore() fails with ExpiredArchiveError strictly after
      scheduled_deletion_at and creates nothing.
    - purge only touches archives that still exist and have expired, so
      a restored archive is never purged.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from unifund_kernel.domain.clock import Clock
from unifund_kernel.domain.dtos import ArchivedProfileRecord
from unifund_kernel.domain.lifecycle import CampaignStatus, IdentityStatus, Role
from unifund_kernel.exceptions import (
    ExpiredArchiveError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from unifund_kernel.logging_config import get_logger
from unifund_kernel.models.archive import ArchivedProfileModel
from unifund_kernel.models.campaign import CampaignModel
from unifund_kernel.models.profile import ProfileModel, StudentModel
from unifund_kernel.services.base import BaseService
from unifund_kernel.services.identity_state_machine import IdentityStateMachine

logger = get_logger("services.archival")

DEFAULT_GRACE_PERIOD_DAYS = 60

_PROFILE_FIELDS = ("email", "role", "first_name", "last_name", "phone")
_STUDENT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "student_number",
    "course",
    "year_of_study",
    "expected_graduation",
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class ArchivalManager(BaseService):
    """Profile archive lifecycle."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
    ):
        super().__init__(session, clock)
        if grace_period_days <= 0:
            raise ValidationError("grace_period_days", "must be positive")
        self.grace_period = timedelta(days=grace_period_days)
        self._identity = IdentityStateMachine(session, self.clock)

    def get(self, archive_id: UUID) -> ArchivedProfileRecord:
        return self._load(
            ArchivedProfileModel, archive_id, "ArchivedProfile", lock=False,
        ).to_dto()

    def find_for_user(self, user_id: UUID) -> ArchivedProfileRecord | None:
        model = self.session.execute(
            select(ArchivedProfileModel)
            .where(ArchivedProfileModel.original_user_id == user_id)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def disable(self, user_id: UUID) -> ArchivedProfileRecord:
        """
        Archive a profile and remove it from the active tables.

        The snapshot keeps ``previous_verification_status`` so the caller
        can report the identity step it implied.
        """
        profile = self._load(ProfileModel, user_id, "Profile")
        student = self.session.get(StudentModel, user_id)

        snapshot: dict[str, Any] = {
            "profile": {f: getattr(profile, f) for f in _PROFILE_FIELDS},
        }
        snapshot["profile"]["created_at"] = _iso(profile.created_at)

        if student is not None:
            active = self.session.execute(
                select(func.count())
                .select_from(CampaignModel)
                .where(CampaignModel.student_id == user_id)
                .where(CampaignModel.status == CampaignStatus.ACTIVE.value)
            ).scalar_one()
            if active:
                raise InvalidStateError(
                    "Profile",
                    user_id,
                    current_state="has_active_campaign",
                    requested="archive",
                    detail=f"{active} active campaign(s) must be deleted first",
                )

            transition = self._identity.mark_pending(user_id)
            snapshot["previous_verification_status"] = transition.previous_status
            snapshot["student"] = {f: getattr(student, f) for f in _STUDENT_FIELDS}
            snapshot["student"].update(
                university_id=str(student.university_id) if student.university_id else None,
                verification_status=IdentityStatus.PENDING.value,
                created_at=_iso(student.created_at),
            )
            self.session.delete(student)

        now = self.clock.now()
        archive = ArchivedProfileModel(
            original_user_id=user_id,
            role=profile.role,
            disabled_at=now,
            scheduled_deletion_at=now + self.grace_period,
            snapshot=snapshot,
        )
        self.session.delete(profile)
        self.session.add(archive)
        self.session.flush()

        logger.info(
            "profile_archived",
            extra={
                "archive_id": str(archive.id),
                "user_id": str(user_id),
                "role": profile.role,
                "scheduled_deletion_at": archive.scheduled_deletion_at.isoformat(),
            },
        )
        return archive.to_dto()

    def restore(self, archive_id: UUID) -> UUID:
        """
        Recreate the profile (and student) from an archive.

        Returns the original user id.  Restoring exactly at
        scheduled_deletion_at is still within the grace period.
        """
        archive = self._load(ArchivedProfileModel, archive_id, "ArchivedProfile")
        now = self.clock.now()
        if now > archive.scheduled_deletion_at:
            raise ExpiredArchiveError(archive_id, archive.scheduled_deletion_at, now)

        user_id = archive.original_user_id
        if self.session.get(ProfileModel, user_id) is not None:
            raise InvalidStateError(
                "Profile",
                user_id,
                current_state="live",
                requested="restore",
                detail="a live profile already exists for this user",
            )

        data = archive.snapshot or {}
        profile_data = data.get("profile", {})
        email = profile_data.get("email")
        clash = self.session.execute(
            select(ProfileModel.id).where(ProfileModel.email == email)
        ).scalar_one_or_none()
        if clash is not None:
            raise InvalidStateError(
                "Profile",
                user_id,
                current_state="email_taken",
                requested="restore",
                detail=f"{email} now belongs to another profile",
            )

        self.session.add(
            ProfileModel(
                id=user_id,
                email=email,
                role=profile_data.get("role", archive.role),
                first_name=profile_data.get("first_name") or "",
                last_name=profile_data.get("last_name") or "",
                phone=profile_data.get("phone"),
                created_at=_parse(profile_data.get("created_at")) or now,
            )
        )

        student_data = data.get("student")
        if student_data is None and archive.role == Role.STUDENT.value:
            student_data = {"email": email}
        if student_data is not None:
            self.session.add(
                StudentModel(
                    id=user_id,
                    first_name=student_data.get("first_name") or "",
                    last_name=student_data.get("last_name") or "",
                    email=student_data.get("email") or email,
                    phone=student_data.get("phone"),
                    university_id=(
                        UUID(student_data["university_id"])
                        if student_data.get("university_id") else None
                    ),
                    student_number=student_data.get("student_number"),
                    course=student_data.get("course"),
                    year_of_study=student_data.get("year_of_study"),
                    expected_graduation=student_data.get("expected_graduation"),
                    verification_status=IdentityStatus.PENDING.value,
                    created_at=_parse(student_data.get("created_at")) or now,
                    updated_at=now,
                )
            )

        self.session.delete(archive)
        self.session.flush()

        logger.info(
            "profile_restored",
            extra={"archive_id": str(archive_id), "user_id": str(user_id)},
        )
        return user_id

    def due_for_purge(self, as_of: datetime) -> list[UUID]:
        return list(
            self.session.execute(
                select(ArchivedProfileModel.id)
                .where(ArchivedProfileModel.scheduled_deletion_at < as_of)
                .order_by(ArchivedProfileModel.scheduled_deletion_at)
            ).scalars()
        )

    def purge(self, archive_id: UUID, as_of: datetime) -> bool:
        """
        Permanently delete one expired archive.

        Returns False when the archive is gone (restored or already
        purged) or not yet expired at ``as_of``.
        """
        if self._supports_row_locks():
            archive = self.session.get(
                ArchivedProfileModel, archive_id,
                with_for_update=True, populate_existing=True,
            )
        else:
            archive = self.session.get(
                ArchivedProfileModel, archive_id, populate_existing=True,
            )
        if archive is None or not archive.scheduled_deletion_at < as_of:
            return False

        user_id = archive.original_user_id
        self.session.delete(archive)
        self.session.flush()
        logger.info(
            "archive_purged",
            extra={"archive_id": str(archive_id), "user_id": str(user_id)},
        )
        return True

    def purge_expired(self, as_of: datetime) -> list[UUID]:
        """Purge every archive whose grace period ended before ``as_of``."""
        return [aid for aid in self.due_for_purge(as_of) if self.purge(aid, as_of)]


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
