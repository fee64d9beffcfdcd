"""
Module: unifund_kernel.models.profile
Responsibility: ORM persistence for account profiles and student records.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One profile per user id; a student row shares its profile's id.
    - verification_status is restricted to the IdentityStatus vocabulary
      by a check constraint.  It is a cache of the latest decision and is
      only written by IdentityStateMachine.

Audit relevance:
    Rows in these tables are the "active listings".  Archival removes
    them and ArchivedProfile keeps a snapshot.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from unifund_kernel.db.base import Base, UTCDateTime, UUIDString
from unifund_kernel.domain.dtos import ProfileRecord, StudentRecord
from unifund_kernel.domain.lifecycle import IdentityStatus, Role


class ProfileModel(Base):
    """Account profile, one per user."""

    __tablename__ = "profiles"

    __table_args__ = (
        CheckConstraint(
            "role IN ('student', 'donor', 'admin')",
            name="ck_profiles_valid_role",
        ),
        Index("ix_profiles_role", "role"),
    )

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Profile {self.id} role={self.role}>"

    def to_dto(self) -> ProfileRecord:
        return ProfileRecord(
            id=self.id,
            email=self.email,
            role=Role(self.role),
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
            created_at=self.created_at,
        )


class StudentModel(Base):
    """Student record holding the cached verification status."""

    __tablename__ = "students"

    __table_args__ = (
        CheckConstraint(
            "verification_status IN ('unverified', 'pending', 'approved', 'rejected')",
            name="ck_students_valid_verification_status",
        ),
        Index("ix_students_verification_status", "verification_status"),
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    university_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    student_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    course: Mapped[str | None] = mapped_column(String(200), nullable=True)
    year_of_study: Mapped[str | None] = mapped_column(String(20), nullable=True)
    expected_graduation: Mapped[str | None] = mapped_column(String(20), nullable=True)
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IdentityStatus.UNVERIFIED.value,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Student {self.id} verification={self.verification_status}>"

    @property
    def status_enum(self) -> IdentityStatus:
        return IdentityStatus(self.verification_status)

    def to_dto(self) -> StudentRecord:
        return StudentRecord(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone=self.phone,
            university_id=self.university_id,
            student_number=self.student_number,
            course=self.course,
            year_of_study=self.year_of_study,
            expected_graduation=self.expected_graduation,
            verification_status=self.status_enum,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
