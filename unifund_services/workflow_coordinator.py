"""
unifund_services.workflow_coordinator -- the workflow engine's only entry point.

Responsibility:
    Runs every administrator action (and the student, donor and gateway
    actions that feed the review queues) as one unit of work:

        authorize -> validate -> lock -> open session -> load & check ->
        apply cascade -> notify -> record cascade -> commit

    and returns a ``CascadeResult`` or raises a typed error.

Architecture position:
    Services layer.  Owns sessions and transaction boundaries; every
    kernel service it calls only flushes.  Reads settings from
    unifund_config and hands plain values down to the kernel.

Invariants enforced:
    - Atomic cascades: all steps of one action commit together or none
      do.  If the rollback itself fails after steps were flushed, the
      caller gets PartialCascadeError carrying the flushed steps.
    - Per-entity serialization: the locks for every entity a cascade
      touches (target, owning student, campaign) are held for the whole
      unit, acquired in a fixed order.
    - Idempotence: re-invoking an action whose target is already in the
      target state returns ALREADY_APPLIED, writes nothing and notifies
      nobody.  Hard-removed targets are answered from the cascade log.
      Create operations pick the new row's id before the first attempt,
      so a retry after a commit that landed finds the row and inserts
      nothing.
    - A student owning an active campaign is never moved away from
      approved by a cascade; such a cascade is refused with
      InvalidStateError.

Failure modes:
    - UnauthorizedError, ValidationError: before any lock or session.
    - NotFoundError, InvalidStateError (and subclasses): rolled back,
      zero side effects.
    - DependencyError: transient database or document-store failures
      outlived the retry policy.
    - PartialCascadeError: rollback failed after steps were flushed, or
      the retries ran out on a commit whose outcome is unknown.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from unifund_config import get_active_settings
from unifund_config.schema import WorkflowSettings
from unifund_kernel.domain.clock import Clock, SystemClock
from unifund_kernel.domain.dtos import (
    CascadeStep,
    NotificationRecord,
    Transitioned,
)
from unifund_kernel.domain.lifecycle import (
    CampaignStatus,
    Decision,
    DocumentType,
    IdentityStatus,
)
from unifund_kernel.exceptions import (
    DependencyError,
    InvalidStateError,
    NotFoundError,
    PartialCascadeError,
    UnifundError,
    ValidationError,
)
from unifund_kernel.logging_config import LogContext, get_logger
from unifund_kernel.models.archive import ArchivedProfileModel
from unifund_kernel.models.campaign import CampaignModel
from unifund_kernel.models.donation import DonationModel
from unifund_kernel.models.profile import ProfileModel, StudentModel
from unifund_kernel.models.verification import VerificationRequestModel
from unifund_kernel.services.archival_manager import ArchivalManager
from unifund_kernel.services.campaign_state_machine import CampaignStateMachine
from unifund_kernel.services.cascade_recorder import CascadeRecorder
from unifund_kernel.services.donation_ledger import DonationLedger
from unifund_kernel.services.identity_state_machine import IdentityStateMachine
from unifund_kernel.services.invariant_auditor import AuditReport, InvariantAuditor
from unifund_kernel.services.notification_dispatcher import NotificationDispatcher
from unifund_kernel.services.verification_ledger import (
    VerificationLedger,
    parse_document_type,
)
from unifund_services import notices
from unifund_services.authorization import Actor, AuthorizationGate
from unifund_services.integration import (
    DocumentStore,
    InMemoryDocumentStore,
    InMemoryPaymentGateway,
    PaymentGateway,
    ResilientDocumentStore,
    document_path,
)
from unifund_services.locks import EntityLockRegistry
from unifund_services.retry import RetryPolicy, call_with_retry

logger = get_logger("services.workflow_coordinator")


class CascadeStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"


@dataclass(frozen=True)
class CascadeResult:
    """
    Outcome of one coordinator operation.

    ``ok`` is always True on a returned result; failures are raised.
    ``status`` tells a fresh application from an idempotent re-invocation.
    """

    status: CascadeStatus
    entity: Any
    cascade_id: UUID | None = None
    steps: tuple[CascadeStep, ...] = ()
    notifications: tuple[NotificationRecord, ...] = ()
    ok: bool = True

    @property
    def applied(self) -> bool:
        return self.status is CascadeStatus.APPLIED

    def to_dict(self) -> dict[str, Any]:
        entity = self.entity.to_dict() if hasattr(self.entity, "to_dict") else self.entity
        return {
            "ok": self.ok,
            "status": self.status.value,
            "entity": entity,
            "cascade_id": str(self.cascade_id) if self.cascade_id else None,
            "steps": [s.to_dict() for s in self.steps],
            "notifications": [n.to_dict() for n in self.notifications],
        }


@dataclass
class _Outcome:
    status: CascadeStatus
    entity: Any


class _UnitOfWork:
    """Services and bookkeeping for one attempt of one cascade."""

    def __init__(self, session: Session, clock: Clock, settings: WorkflowSettings):
        self.session = session
        self.verifications = VerificationLedger(session, clock)
        self.identity = IdentityStateMachine(session, clock)
        self.campaigns = CampaignStateMachine(session, clock)
        self.donations = DonationLedger(session, clock)
        self.archives = ArchivalManager(session, clock, settings.grace_period_days)
        self.dispatcher = NotificationDispatcher(session, clock)
        self.recorder = CascadeRecorder(session, clock)
        self.steps: list[CascadeStep] = []
        self.notifications: list[NotificationRecord] = []
        # Set once the APPLIED commit has been sent; a failure after this
        # point leaves the outcome unknown.
        self.commit_entered = False

    def track(self, entity_type: str, transitioned: Transitioned) -> Transitioned:
        if transitioned.changed:
            self.steps.append(
                CascadeStep(
                    entity_type=entity_type,
                    entity_id=transitioned.record.id,
                    from_state=transitioned.previous_status,
                    to_state=transitioned.record.status.value
                    if hasattr(transitioned.record, "status")
                    else transitioned.record.verification_status.value,
                )
            )
        return transitioned

    def step(self, entity_type: str, entity_id: UUID, from_state: str | None, to_state: str):
        self.steps.append(CascadeStep(entity_type, entity_id, from_state, to_state))

    def notify(self, recipient_id: UUID, notice: notices.Notice, payload: dict | None = None):
        kind, title, message = notice
        self.notifications.append(
            self.dispatcher.notify(recipient_id, kind, title, message, payload)
        )

    def notify_admins(self, notice: notices.Notice, payload: dict | None = None):
        kind, title, message = notice
        self.notifications.extend(
            self.dispatcher.notify_admins(kind, title, message, payload)
        )


class WorkflowCoordinator:
    """
    Single entry point for workflow actions.

    Contract:
        Each public method takes an ``Actor`` first, runs one unit of work
        in its own session, and returns a ``CascadeResult`` (or, for
        ``document_review_url`` and ``purge_expired_archives``, a plain
        value).  Safe to call from multiple threads.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: WorkflowSettings | None = None,
        clock: Clock | None = None,
        document_store: DocumentStore | None = None,
        payment_gateway: PaymentGateway | None = None,
        locks: EntityLockRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self.settings = settings or get_active_settings()
        self.clock = clock or SystemClock()
        self._sleep = sleep
        self._retry_policy = RetryPolicy.from_settings(self.settings.retry)
        self._gate = AuthorizationGate(self.settings.rbac)
        self._locks = locks or EntityLockRegistry()
        self._raw_documents = document_store or InMemoryDocumentStore()
        self._documents = ResilientDocumentStore(
            self._raw_documents, self._retry_policy, sleep=sleep,
        )
        self._payments = payment_gateway or InMemoryPaymentGateway()

    # =====================================================================
    # Verification
    # =====================================================================

    def approve_verification(self, actor: Actor, request_id: UUID) -> CascadeResult:
        """Request -> approved; Student -> approved; notify the student."""
        self._gate.require(actor, "approve_verification")
        student_id = self._peek(lambda s: self._request_owner(s, request_id))

        def body(unit: _UnitOfWork) -> _Outcome:
            decided = unit.track(
                "VerificationRequest",
                unit.verifications.decide(
                    request_id, Decision.APPROVE, reviewer_id=actor.actor_id,
                ),
            )
            if not decided.changed:
                return _Outcome(CascadeStatus.ALREADY_APPLIED, decided.record)
            unit.track("Student", unit.identity.approve(student_id, force=True))
            unit.notify(
                student_id,
                notices.verification_approved(decided.record.document_type),
                {"request_id": str(request_id)},
            )
            return _Outcome(CascadeStatus.APPLIED, decided.record)

        return self._execute(
            "approve_verification", actor, "VerificationRequest", request_id,
            [("verification", request_id), ("student", student_id)], body,
        )

    def reject_verification(
        self, actor: Actor, request_id: UUID, reason: str,
    ) -> CascadeResult:
        """Request -> rejected; Student -> rejected; pending campaigns -> rejected."""
        self._gate.require(actor, "reject_verification")
        reason = _require_reason(reason)
        student_id = self._peek(lambda s: self._request_owner(s, request_id))

        def body(unit: _UnitOfWork) -> _Outcome:
            decided = unit.track(
                "VerificationRequest",
                unit.verifications.decide(
                    request_id, Decision.REJECT, reason=reason, reviewer_id=actor.actor_id,
                ),
            )
            if not decided.changed:
                return _Outcome(CascadeStatus.ALREADY_APPLIED, decided.record)
            self._guard_identity_change(unit.session, student_id, IdentityStatus.REJECTED)
            unit.track("Student", unit.identity.reject(student_id, force=True))
            for rejected in unit.campaigns.reject_pending_for_student(student_id):
                unit.track("Campaign", rejected)
            unit.notify(
                student_id,
                notices.verification_rejected(decided.record.document_type, reason),
                {"request_id": str(request_id), "reason": reason},
            )
            return _Outcome(CascadeStatus.APPLIED, decided.record)

        return self._execute(
            "reject_verification", actor, "VerificationRequest", request_id,
            [("verification", request_id), ("student", student_id)], body,
        )

    def submit_verification(
        self,
        actor: Actor,
        student_id: UUID,
        document_type: str | DocumentType,
        filename: str,
        content: bytes,
    ) -> CascadeResult:
        """
        Upload a document and open a new pending request.

        The upload happens before the database unit of work, through the
        retrying document store; a failed upload writes nothing.  If the
        unit of work then fails the uploaded object is removed again,
        unless the commit outcome is unknown.
        """
        self._gate.require(actor, "submit_verification", owner_id=student_id)
        doc_type = parse_document_type(document_type)
        if not content:
            raise ValidationError("content", "document is empty")

        def check(session: Session) -> str:
            first_name = self._student_for_submission(session, student_id)
            self._guard_identity_change(session, student_id, IdentityStatus.PENDING)
            return first_name

        first_name = self._peek(check)
        path = document_path(student_id, doc_type.value, filename, self.clock.now())
        stored = self._documents.upload(path, content)
        url = self._documents.public_url(stored)
        request_id = uuid4()

        def body(unit: _UnitOfWork) -> _Outcome:
            existing = self._existing(unit, VerificationRequestModel, request_id)
            if existing is not None:
                return existing
            request = unit.verifications.submit(
                student_id, doc_type, url, request_id=request_id,
            )
            unit.step("VerificationRequest", request.id, None, request.status.value)
            self._guard_identity_change(unit.session, student_id, IdentityStatus.PENDING)
            unit.track("Student", unit.identity.mark_pending(student_id))
            unit.notify_admins(
                notices.verification_submitted(first_name),
                {"request_id": str(request.id), "student_id": str(student_id)},
            )
            return _Outcome(CascadeStatus.APPLIED, request)

        try:
            return self._execute(
                "submit_verification", actor, "Student", student_id,
                [("student", student_id)], body,
            )
        except PartialCascadeError:
            raise
        except Exception:
            self._discard_upload(stored)
            raise

    def document_review_url(self, actor: Actor, request_id: UUID) -> str:
        """Time-limited URL for an admin to view a submitted document."""
        self._gate.require(actor, "document_review_url")

        def load(session: Session) -> str:
            request = session.get(VerificationRequestModel, request_id)
            if request is None:
                raise NotFoundError("VerificationRequest", request_id)
            return request.document_url

        url = self._peek(load)
        prefix = self._documents.public_url("")
        if not url.startswith(prefix):
            raise ValidationError("document_url", "not held by the document store")
        return self._documents.signed_url(
            url[len(prefix):], self.settings.signed_url_ttl_seconds,
        )

    # =====================================================================
    # Campaigns
    # =====================================================================

    def create_campaign(
        self,
        actor: Actor,
        student_id: UUID,
        title: str,
        goal_amount: Decimal | int | str,
        story: str = "",
        category: str = "other",
        currency: str | None = None,
        document_urls: Iterable[str] = (),
    ) -> CascadeResult:
        """Create a pending campaign and put it in the admin review queue."""
        self._gate.require(actor, "create_campaign", owner_id=student_id)
        first_name = self._peek(lambda s: self._student_for_submission(s, student_id))
        urls = tuple(document_urls)
        campaign_id = uuid4()

        def body(unit: _UnitOfWork) -> _Outcome:
            existing = self._existing(unit, CampaignModel, campaign_id)
            if existing is not None:
                return existing
            campaign = unit.campaigns.create(
                student_id,
                title,
                goal_amount,
                story=story,
                category=category,
                currency=currency or self.settings.default_currency,
                document_urls=urls,
                campaign_id=campaign_id,
            )
            unit.step("Campaign", campaign.id, None, campaign.status.value)
            payload = {"campaign_id": str(campaign.id)}
            unit.notify(student_id, notices.campaign_submitted(campaign.title), payload)
            unit.notify_admins(
                notices.campaign_pending_review(campaign.title, first_name), payload,
            )
            return _Outcome(CascadeStatus.APPLIED, campaign)

        return self._execute(
            "create_campaign", actor, "Student", student_id,
            [("student", student_id)], body,
        )

    def approve_campaign(self, actor: Actor, campaign_id: UUID) -> CascadeResult:
        """Campaign -> active; Student -> approved; pending requests -> approved."""
        self._gate.require(actor, "approve_campaign")
        student_id = self._peek(lambda s: self._campaign_owner(s, campaign_id))

        def body(unit: _UnitOfWork) -> _Outcome:
            activated = unit.track("Campaign", unit.campaigns.activate(campaign_id))
            if not activated.changed:
                return _Outcome(CascadeStatus.ALREADY_APPLIED, activated.record)
            unit.track("Student", unit.identity.approve(student_id, force=True))
            for decided in unit.verifications.decide_all_pending(
                student_id, Decision.APPROVE, reviewer_id=actor.actor_id,
            ):
                unit.track("VerificationRequest", decided)
            unit.notify(
                student_id,
                notices.campaign_approved(activated.record.title),
                {"campaign_id": str(campaign_id)},
            )
            return _Outcome(CascadeStatus.APPLIED, activated.record)

        return self._execute(
            "approve_campaign", actor, "Campaign", campaign_id,
            [("campaign", campaign_id), ("student", student_id)], body,
        )

    def reject_campaign(
        self, actor: Actor, campaign_id: UUID, reason: str,
    ) -> CascadeResult:
        """Campaign -> rejected; Student -> rejected; pending requests -> rejected."""
        self._gate.require(actor, "reject_campaign")
        reason = _require_reason(reason)
        student_id = self._peek(lambda s: self._campaign_owner(s, campaign_id))

        def body(unit: _UnitOfWork) -> _Outcome:
            rejected = unit.track("Campaign", unit.campaigns.reject(campaign_id))
            if not rejected.changed:
                return _Outcome(CascadeStatus.ALREADY_APPLIED, rejected.record)
            self._guard_identity_change(unit.session, student_id, IdentityStatus.REJECTED)
            unit.track("Student", unit.identity.reject(student_id, force=True))
            for decided in unit.verifications.decide_all_pending(
                student_id,
                Decision.REJECT,
                reason=f"Campaign rejected: {reason}",
                reviewer_id=actor.actor_id,
            ):
                unit.track("VerificationRequest", decided)
            unit.notify(
                student_id,
                notices.campaign_rejected(rejected.record.title, reason),
                {"campaign_id": str(campaign_id), "reason": reason},
            )
            return _Outcome(CascadeStatus.APPLIED, rejected.record)

        return self._execute(
            "reject_campaign", actor, "Campaign", campaign_id,
            [("campaign", campaign_id), ("student", student_id)], body,
        )

    def delete_campaign(self, actor: Actor, campaign_id: UUID) -> CascadeResult:
        """Remove the campaign row; Student -> pending."""
        self._gate.require(actor, "delete_campaign")
        student_id = self._peek(
            lambda s: self._campaign_owner(s, campaign_id, missing_ok=True)
        )

        def body(unit: _UnitOfWork) -> _Outcome:
            if unit.session.get(CampaignModel, campaign_id) is None:
                return self._already_from_log(unit, "delete_campaign", "Campaign", campaign_id)
            deleted = unit.track("Campaign", unit.campaigns.delete(campaign_id))
            owner = deleted.record.student_id
            self._guard_identity_change(
                unit.session, owner, IdentityStatus.PENDING, excluding_campaign=campaign_id,
            )
            unit.track("Student", unit.identity.force(owner, IdentityStatus.PENDING))
            unit.notify(
                owner,
                notices.campaign_deleted(deleted.record.title),
                {"campaign_id": str(campaign_id)},
            )
            return _Outcome(CascadeStatus.APPLIED, deleted.record)

        return self._execute(
            "delete_campaign", actor, "Campaign", campaign_id,
            [("campaign", campaign_id), ("student", student_id)], body,
        )

    # =====================================================================
    # Donations
    # =====================================================================

    def submit_donation(
        self,
        actor: Actor,
        campaign_id: UUID | None,
        amount: Decimal | int | str,
        message: str | None = None,
        is_anonymous: bool = False,
        payment_reference: str | None = None,
    ) -> CascadeResult:
        """
        Record a pending donation.

        Platform gifts (``campaign_id`` None) get a gateway reference when
        none is supplied; completion arrives via handle_payment_completed.
        """
        self._gate.require(actor, "submit_donation")
        if campaign_id is None and payment_reference is None:
            payment_reference = self._payments.new_reference("PLATFORM")
        donation_id = uuid4()

        def body(unit: _UnitOfWork) -> _Outcome:
            existing = self._existing(unit, DonationModel, donation_id)
            if existing is not None:
                return existing
            donation = unit.donations.submit(
                campaign_id,
                amount,
                donor_id=actor.actor_id,
                payment_reference=payment_reference,
                message=message,
                is_anonymous=is_anonymous,
                donation_id=donation_id,
            )
            unit.step("Donation", donation.id, None, donation.status.value)
            if campaign_id is not None:
                campaign = unit.campaigns.get(campaign_id)
                unit.notify_admins(
                    notices.donation_pending_review(
                        donation.amount, campaign.currency, campaign.title,
                    ),
                    {"donation_id": str(donation.id), "campaign_id": str(campaign_id)},
                )
            return _Outcome(CascadeStatus.APPLIED, donation)

        return self._execute(
            "submit_donation", actor, "Campaign" if campaign_id else "Platform",
            campaign_id or actor.actor_id,
            [("campaign", campaign_id)], body,
        )

    def approve_donation(self, actor: Actor, donation_id: UUID) -> CascadeResult:
        """Donation -> received; credit the campaign once; notify its student."""
        self._gate.require(actor, "approve_donation")
        return self._decide_donation(actor, donation_id, Decision.APPROVE)

    def reject_donation(self, actor: Actor, donation_id: UUID) -> CascadeResult:
        """Donation -> rejected; notify the donor when known."""
        self._gate.require(actor, "reject_donation")
        return self._decide_donation(actor, donation_id, Decision.REJECT)

    def handle_payment_completed(
        self, reference: str, actor: Actor | None = None,
    ) -> CascadeResult:
        """Gateway completion signal: approve the donation holding ``reference``."""
        actor = actor or Actor.system()
        self._gate.require(actor, "handle_payment_completed")
        if not reference or not reference.strip():
            raise ValidationError("payment_reference", "must not be empty")

        def find(session: Session) -> UUID:
            donation_id = session.execute(
                select(DonationModel.id).where(DonationModel.payment_reference == reference)
            ).scalar_one_or_none()
            if donation_id is None:
                raise NotFoundError("Donation", reference)
            return donation_id

        donation_id = self._peek(find)
        return self._decide_donation(actor, donation_id, Decision.APPROVE)

    def _decide_donation(
        self, actor: Actor, donation_id: UUID, outcome: Decision,
    ) -> CascadeResult:
        def owners(session: Session) -> tuple[UUID | None, UUID | None]:
            donation = session.get(DonationModel, donation_id)
            if donation is None:
                raise NotFoundError("Donation", donation_id)
            if donation.campaign_id is None:
                return None, None
            campaign = session.get(CampaignModel, donation.campaign_id)
            return donation.campaign_id, campaign.student_id if campaign else None

        campaign_id, student_id = self._peek(owners)
        operation = "approve_donation" if outcome is Decision.APPROVE else "reject_donation"

        def body(unit: _UnitOfWork) -> _Outcome:
            decided = unit.track("Donation", unit.donations.decide(donation_id, outcome))
            if not decided.changed:
                return _Outcome(CascadeStatus.ALREADY_APPLIED, decided.record)
            donation = decided.record
            payload = {"donation_id": str(donation_id)}

            if outcome is Decision.APPROVE:
                if donation.campaign_id is not None:
                    campaign = unit.campaigns.get(donation.campaign_id)
                    payload["campaign_id"] = str(campaign.id)
                    unit.notify(
                        campaign.student_id,
                        notices.donation_received(
                            donation.amount, campaign.currency, campaign.title,
                        ),
                        payload,
                    )
                elif donation.donor_id is not None:
                    unit.notify(
                        donation.donor_id,
                        notices.payment_confirmed(donation.amount, donation.payment_reference),
                        payload,
                    )
            elif donation.donor_id is not None:
                unit.notify(
                    donation.donor_id,
                    notices.payment_rejected(donation.amount, donation.payment_reference),
                    payload,
                )
            return _Outcome(CascadeStatus.APPLIED, donation)

        return self._execute(
            operation, actor, "Donation", donation_id,
            [("donation", donation_id), ("campaign", campaign_id), ("student", student_id)],
            body,
        )

    # =====================================================================
    # Archival
    # =====================================================================

    def archive_profile(self, actor: Actor, user_id: UUID) -> CascadeResult:
        """Student -> pending; snapshot into ArchivedProfile; profile removed."""
        self._gate.require(actor, "archive_profile")

        def body(unit: _UnitOfWork) -> _Outcome:
            existing = unit.archives.find_for_user(user_id)
            live = unit.session.get(ProfileModel, user_id) is not None
            if existing is not None and not live:
                return _Outcome(CascadeStatus.ALREADY_APPLIED, existing)
            if existing is not None:
                raise InvalidStateError(
                    "Profile", user_id,
                    current_state="archived",
                    requested="archive",
                    detail="an archive already exists for this user",
                )

            archive = unit.archives.disable(user_id)
            previous = archive.snapshot.get("previous_verification_status")
            if previous is not None and previous != IdentityStatus.PENDING.value:
                unit.step("Student", user_id, previous, IdentityStatus.PENDING.value)
            unit.step("ArchivedProfile", archive.id, None, "archived")
            unit.notify(
                user_id,
                notices.profile_archived(archive.scheduled_deletion_at),
                {"archive_id": str(archive.id)},
            )
            return _Outcome(CascadeStatus.APPLIED, archive)

        return self._execute(
            "archive_profile", actor, "Profile", user_id,
            [("student", user_id)], body,
        )

    def restore_profile(self, actor: Actor, archive_id: UUID) -> CascadeResult:
        """Recreate profile and student (pending) from the archive."""
        self._gate.require(actor, "restore_profile")

        def owner(session: Session) -> UUID | None:
            archive = session.get(ArchivedProfileModel, archive_id)
            return archive.original_user_id if archive else None

        user_id = self._peek(owner)

        def body(unit: _UnitOfWork) -> _Outcome:
            archive = unit.session.get(ArchivedProfileModel, archive_id)
            if archive is None:
                return self._already_from_log(
                    unit, "restore_profile", "ArchivedProfile", archive_id,
                )
            restored_id = unit.archives.restore(archive_id)
            unit.step("ArchivedProfile", archive_id, "archived", "restored")
            student = unit.session.get(StudentModel, restored_id)
            if student is not None:
                unit.step("Student", restored_id, None, student.verification_status)
            unit.notify(
                restored_id, notices.profile_restored(), {"archive_id": str(archive_id)},
            )
            profile = unit.session.get(ProfileModel, restored_id)
            return _Outcome(CascadeStatus.APPLIED, profile.to_dto())

        return self._execute(
            "restore_profile", actor, "ArchivedProfile", archive_id,
            [("archive", archive_id), ("student", user_id)], body,
        )

    def purge_expired_archives(
        self, actor: Actor | None = None, as_of: datetime | None = None,
    ) -> list[UUID]:
        """
        Permanently delete archives whose grace period ended before ``as_of``.

        Each archive is purged in its own unit under the same archive lock
        that restore_profile takes, so a purge never races a restore.
        """
        actor = actor or Actor.system()
        self._gate.require(actor, "purge_expired_archives")
        as_of = as_of or self.clock.now()

        def due(session: Session) -> list[UUID]:
            manager = ArchivalManager(session, self.clock, self.settings.grace_period_days)
            return manager.due_for_purge(as_of)

        purged: list[UUID] = []
        for archive_id in self._peek(due):

            def body(unit: _UnitOfWork, archive_id: UUID = archive_id) -> _Outcome:
                if not unit.archives.purge(archive_id, as_of):
                    return _Outcome(CascadeStatus.ALREADY_APPLIED, archive_id)
                unit.step("ArchivedProfile", archive_id, "archived", "purged")
                return _Outcome(CascadeStatus.APPLIED, archive_id)

            result = self._execute(
                "purge_archive", actor, "ArchivedProfile", archive_id,
                [("archive", archive_id)], body,
            )
            if result.applied:
                purged.append(archive_id)

        logger.info(
            "archives_purged",
            extra={"purged_count": len(purged), "as_of": as_of.isoformat()},
        )
        return purged

    # =====================================================================
    # Read helpers
    # =====================================================================

    def audit(self) -> AuditReport:
        """Run the invariant auditor against committed state."""
        return self._peek(lambda s: InvariantAuditor(s, self.clock).audit())

    # =====================================================================
    # Unit-of-work machinery
    # =====================================================================

    def _execute(
        self,
        operation: str,
        actor: Actor,
        target_type: str,
        target_id: UUID,
        lock_keys: list[tuple[str, Any]],
        body: Callable[[_UnitOfWork], _Outcome],
    ) -> CascadeResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor.actor_id),
            operation=operation,
            entity_id=str(target_id),
        ):
            t0 = time.monotonic()
            logger.info("cascade_started", extra={"target_type": target_type})
            units: list[_UnitOfWork] = []
            try:
                with self._locks.hold(lock_keys):
                    try:
                        result = call_with_retry(
                            lambda: self._attempt(
                                operation, actor, target_type, target_id, body, units,
                            ),
                            policy=self._retry_policy,
                            dependency="database",
                            sleep=self._sleep,
                        )
                    except DependencyError as exc:
                        # Any attempt that reached commit may have landed.
                        sent = [u for u in units if u.commit_entered]
                        if not sent:
                            raise
                        steps = sent[-1].steps
                        logger.critical(
                            "cascade_commit_indeterminate",
                            extra={"step_count": len(steps), "attempts": exc.attempts},
                        )
                        raise PartialCascadeError(
                            operation,
                            target_id,
                            [step.to_dict() for step in steps],
                            cause=exc,
                        ) from exc
            except UnifundError as exc:
                logger.warning(
                    "cascade_failed",
                    extra={
                        "exc_code": exc.code,
                        "error": str(exc),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                raise

            logger.info(
                "cascade_completed",
                extra={
                    "status": result.status.value,
                    "cascade_id": str(result.cascade_id) if result.cascade_id else None,
                    "step_count": len(result.steps),
                    "notification_count": len(result.notifications),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def _attempt(
        self,
        operation: str,
        actor: Actor,
        target_type: str,
        target_id: UUID,
        body: Callable[[_UnitOfWork], _Outcome],
        units: list[_UnitOfWork],
    ) -> CascadeResult:
        session = self._session_factory()
        unit = _UnitOfWork(session, self.clock, self.settings)
        units.append(unit)
        try:
            outcome = body(unit)
            cascade_id = None
            if outcome.status is CascadeStatus.APPLIED:
                run = unit.recorder.record(
                    operation,
                    target_type,
                    target_id,
                    actor.actor_id,
                    unit.steps,
                    len(unit.notifications),
                )
                cascade_id = run.id
                with LogContext.bind(cascade_id=str(cascade_id)):
                    unit.commit_entered = True
                    session.commit()
                    logger.info("cascade_committed", extra={"step_count": len(unit.steps)})
            else:
                session.commit()
        except Exception as exc:
            self._rollback(session, operation, target_id, unit, exc)
            raise
        finally:
            session.close()

        if outcome.status is CascadeStatus.ALREADY_APPLIED:
            return CascadeResult(CascadeStatus.ALREADY_APPLIED, outcome.entity)
        return CascadeResult(
            CascadeStatus.APPLIED,
            outcome.entity,
            cascade_id=cascade_id,
            steps=tuple(unit.steps),
            notifications=tuple(unit.notifications),
        )

    def _rollback(
        self,
        session: Session,
        operation: str,
        target_id: UUID,
        unit: _UnitOfWork,
        cause: BaseException,
    ) -> None:
        try:
            session.rollback()
        except Exception as rollback_exc:
            logger.critical(
                "cascade_rollback_failed",
                extra={
                    "step_count": len(unit.steps),
                    "error_type": type(rollback_exc).__name__,
                },
            )
            if unit.steps:
                raise PartialCascadeError(
                    operation,
                    target_id,
                    [step.to_dict() for step in unit.steps],
                    cause=cause,
                ) from rollback_exc
            raise
        logger.info(
            "cascade_rolled_back",
            extra={"step_count": len(unit.steps), "error_type": type(cause).__name__},
        )

    def _peek(self, fn: Callable[[Session], Any]) -> Any:
        """Run a read in a short-lived session, retrying transient failures."""

        def read() -> Any:
            with self._session_factory() as session:
                return fn(session)

        return call_with_retry(
            read, policy=self._retry_policy, dependency="database", sleep=self._sleep,
        )

    @staticmethod
    def _existing(unit: _UnitOfWork, model: type, record_id: UUID) -> _Outcome | None:
        """ALREADY_APPLIED when an earlier attempt's insert of ``record_id`` committed."""
        row = unit.session.get(model, record_id)
        if row is None:
            return None
        logger.warning("cascade_commit_already_landed", extra={"record_id": str(record_id)})
        return _Outcome(CascadeStatus.ALREADY_APPLIED, row.to_dto())

    def _discard_upload(self, path: str) -> None:
        try:
            self._documents.remove(path)
        except Exception:
            # The caller re-raises the unit-of-work error; the object is left behind.
            logger.error("document_orphaned", extra={"path": path}, exc_info=True)

    @staticmethod
    def _already_from_log(
        unit: _UnitOfWork, operation: str, entity_type: str, target_id: UUID,
    ) -> _Outcome:
        run = unit.recorder.find_applied(operation, target_id)
        if run is None:
            raise NotFoundError(entity_type, target_id)
        return _Outcome(CascadeStatus.ALREADY_APPLIED, run)

    @staticmethod
    def _guard_identity_change(
        session: Session,
        student_id: UUID,
        target: IdentityStatus,
        excluding_campaign: UUID | None = None,
    ) -> None:
        """Refuse to move a student off approved while they own an active campaign."""
        if target is IdentityStatus.APPROVED:
            return
        stmt = (
            select(func.count())
            .select_from(CampaignModel)
            .where(CampaignModel.student_id == student_id)
            .where(CampaignModel.status == CampaignStatus.ACTIVE.value)
        )
        if excluding_campaign is not None:
            stmt = stmt.where(CampaignModel.id != excluding_campaign)
        active = session.execute(stmt).scalar_one()
        if active:
            raise InvalidStateError(
                "Student",
                student_id,
                current_state="owns_active_campaign",
                requested=target.value,
                detail=f"{active} active campaign(s) require an approved owner",
            )

    @staticmethod
    def _request_owner(session: Session, request_id: UUID) -> UUID:
        request = session.get(VerificationRequestModel, request_id)
        if request is None:
            raise NotFoundError("VerificationRequest", request_id)
        return request.student_id

    @staticmethod
    def _campaign_owner(
        session: Session, campaign_id: UUID, missing_ok: bool = False,
    ) -> UUID | None:
        campaign = session.get(CampaignModel, campaign_id)
        if campaign is None:
            if missing_ok:
                return None
            raise NotFoundError("Campaign", campaign_id)
        return campaign.student_id

    @staticmethod
    def _student_for_submission(session: Session, student_id: UUID) -> str:
        student = session.get(StudentModel, student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        return student.first_name


def _require_reason(reason: str | None) -> str:
    if not reason or not reason.strip():
        raise ValidationError("reason", "a rejection needs a reason")
    return reason.strip()
