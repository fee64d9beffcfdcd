"""
Notification wording for workflow cascades.

Pure functions returning (type, title, message) triples.  The coordinator
passes them to NotificationDispatcher; nothing here touches the database.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from unifund_kernel.domain.lifecycle import DocumentType, NotificationType

Notice = tuple[NotificationType, str, str]

_DOCUMENT_LABELS = {
    DocumentType.IDENTITY: "identity document",
    DocumentType.ENROLLMENT: "proof of enrollment",
    DocumentType.FEE_STATEMENT: "fee statement",
    DocumentType.ACADEMIC_RECORD: "academic record",
}


def format_amount(amount: Decimal, currency: str = "ZAR") -> str:
    if currency == "ZAR":
        return f"R{amount:.2f}"
    return f"{currency} {amount:.2f}"


def document_label(document_type: DocumentType) -> str:
    return _DOCUMENT_LABELS[DocumentType(document_type)]


def verification_approved(document_type: DocumentType) -> Notice:
    return (
        NotificationType.VERIFICATION_UPDATE,
        "Verification Approved",
        f"Your {document_label(document_type)} has been verified.",
    )


def verification_rejected(document_type: DocumentType, reason: str) -> Notice:
    return (
        NotificationType.VERIFICATION_UPDATE,
        "Verification Rejected",
        f"Your {document_label(document_type)} was not approved. Reason: {reason}. "
        "Please upload a new document.",
    )


def verification_submitted(first_name: str | None) -> Notice:
    return (
        NotificationType.VERIFICATION_UPDATE,
        "New Verification Request",
        f"{first_name or 'Student'} has submitted profile verification documents.",
    )


def campaign_submitted(title: str) -> Notice:
    return (
        NotificationType.CAMPAIGN_UPDATE,
        "Campaign Submitted",
        f'Your campaign "{title}" has been submitted for review.',
    )


def campaign_pending_review(title: str, first_name: str | None) -> Notice:
    return (
        NotificationType.CAMPAIGN_UPDATE,
        "New Campaign Pending",
        f'A new campaign "{title}" by {first_name or "Student"} is waiting for approval.',
    )


def campaign_approved(title: str) -> Notice:
    return (
        NotificationType.CAMPAIGN_UPDATE,
        "Campaign Approved!",
        f'Your campaign "{title}" has been approved and is now live! '
        "Your account has been verified.",
    )


def campaign_rejected(title: str, reason: str) -> Notice:
    return (
        NotificationType.CAMPAIGN_UPDATE,
        "Campaign Rejected",
        f'Your campaign "{title}" was not approved. Reason: {reason}. '
        "Please update your documents and try again.",
    )


def campaign_deleted(title: str) -> Notice:
    return (
        NotificationType.CAMPAIGN_UPDATE,
        "Campaign Deleted by Admin",
        f'Your campaign "{title}" has been deleted by an administrator.',
    )


def donation_pending_review(amount: Decimal, currency: str, title: str) -> Notice:
    return (
        NotificationType.DONATION_RECEIVED,
        "New Pending Donation",
        f'A new donation of {format_amount(amount, currency)} for "{title}" needs verification.',
    )


def donation_received(amount: Decimal, currency: str, title: str) -> Notice:
    return (
        NotificationType.DONATION_RECEIVED,
        "Donation Received",
        f'A donation of {format_amount(amount, currency)} to "{title}" has been confirmed.',
    )


def payment_confirmed(amount: Decimal, reference: str | None) -> Notice:
    suffix = f" (Ref: {reference})" if reference else ""
    return (
        NotificationType.PAYMENT_MADE,
        "Donation Confirmed",
        f"Thank you! Your donation of {format_amount(amount)} was confirmed{suffix}.",
    )


def payment_rejected(amount: Decimal, reference: str | None) -> Notice:
    suffix = f" (Ref: {reference})" if reference else ""
    return (
        NotificationType.PAYMENT_MADE,
        "Donation Not Confirmed",
        f"Your donation of {format_amount(amount)} could not be confirmed{suffix}.",
    )


def profile_archived(scheduled_deletion_at: datetime) -> Notice:
    return (
        NotificationType.PROFILE_UPDATE,
        "Account Disabled",
        "Your account has been disabled by an administrator. It can be restored "
        f"until {scheduled_deletion_at:%Y-%m-%d}.",
    )


def profile_restored() -> Notice:
    return (
        NotificationType.PROFILE_UPDATE,
        "Account Restored",
        "Your account has been restored. Your verification status is pending review.",
    )
