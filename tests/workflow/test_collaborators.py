"""
Tests for the external collaborator adapters and notification wording.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from unifund_kernel.domain.lifecycle import DocumentType, NotificationType
from unifund_kernel.exceptions import DependencyError, ValidationError
from unifund_services import notices
from unifund_services.integration import (
    DocumentStore,
    InMemoryDocumentStore,
    InMemoryPaymentGateway,
    PaymentGateway,
    ResilientDocumentStore,
    document_path,
)
from unifund_services.retry import RetryPolicy

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class _FlakyStore(InMemoryDocumentStore):
    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.upload_calls = 0

    def upload(self, path, content):
        self.upload_calls += 1
        if self.upload_calls <= self.failures:
            raise ConnectionError("storage unreachable")
        return super().upload(path, content)


class _AckLostStore(InMemoryDocumentStore):
    """Stores the first upload, then times out before acknowledging it."""

    def __init__(self):
        super().__init__()
        self.upload_calls = 0

    def upload(self, path, content):
        self.upload_calls += 1
        stored = super().upload(path, content)
        if self.upload_calls == 1:
            raise TimeoutError("upload acknowledgement lost")
        return stored


class TestDocumentPath:
    def test_layout(self):
        user = uuid4()
        path = document_path(user, "identity", "Scan.PDF", NOW)
        assert path == f"verification/{user}/identity_{int(NOW.timestamp() * 1000)}.pdf"

    @pytest.mark.parametrize("filename", ["scan", "scan."])
    def test_extension_required(self, filename):
        with pytest.raises(ValidationError):
            document_path(uuid4(), "identity", filename, NOW)


class TestInMemoryDocumentStore:
    def test_protocols(self):
        assert isinstance(InMemoryDocumentStore(), DocumentStore)
        assert isinstance(InMemoryPaymentGateway(), PaymentGateway)

    def test_upload_and_urls(self):
        store = InMemoryDocumentStore()
        path = store.upload("verification/u/identity_1.pdf", b"%PDF")

        assert path in store
        assert store.read(path) == b"%PDF"
        assert store.public_url(path) == "https://storage.local/documents/verification/u/identity_1.pdf"
        signed = store.signed_url(path, 3600)
        assert signed.startswith(store.public_url(path) + "?token=")
        assert signed.endswith("expires_in=3600")

    def test_identical_reupload_is_accepted(self):
        store = InMemoryDocumentStore()
        store.upload("a.pdf", b"1")

        assert store.upload("a.pdf", b"1") == "a.pdf"
        assert store.read("a.pdf") == b"1"

    def test_no_overwrite(self):
        store = InMemoryDocumentStore()
        store.upload("a.pdf", b"1")
        with pytest.raises(ValidationError):
            store.upload("a.pdf", b"2")
        assert store.read("a.pdf") == b"1"

    def test_remove(self):
        store = InMemoryDocumentStore()
        store.upload("a.pdf", b"1")

        store.remove("a.pdf")
        store.remove("a.pdf")

        assert "a.pdf" not in store

    def test_signed_url_for_missing_object(self):
        with pytest.raises(KeyError):
            InMemoryDocumentStore().signed_url("missing.pdf", 60)


class TestResilientDocumentStore:
    def test_transient_upload_failures_are_retried(self):
        raw = _FlakyStore(failures=2)
        store = ResilientDocumentStore(raw, RetryPolicy(), sleep=lambda s: None)

        assert store.upload("a.pdf", b"x") == "a.pdf"
        assert raw.upload_calls == 3

    def test_persistent_failure(self):
        raw = _FlakyStore(failures=99)
        store = ResilientDocumentStore(raw, RetryPolicy(), sleep=lambda s: None)

        with pytest.raises(DependencyError) as exc_info:
            store.upload("a.pdf", b"x")
        assert exc_info.value.dependency == "document_store.upload"
        assert "a.pdf" not in raw

    def test_retry_after_lost_acknowledgement(self):
        raw = _AckLostStore()
        store = ResilientDocumentStore(raw, RetryPolicy(), sleep=lambda s: None)

        assert store.upload("a.pdf", b"x") == "a.pdf"
        assert raw.upload_calls == 2
        assert raw.read("a.pdf") == b"x"

    def test_remove(self):
        raw = InMemoryDocumentStore()
        store = ResilientDocumentStore(raw, RetryPolicy(), sleep=lambda s: None)
        store.upload("a.pdf", b"x")

        store.remove("a.pdf")

        assert "a.pdf" not in raw


class TestPaymentGateway:
    def test_reference_format(self):
        gateway = InMemoryPaymentGateway()
        ref = gateway.new_reference("PLATFORM")

        prefix, digits = ref.split("_")
        assert prefix == "PLATFORM"
        assert len(digits) == 12 and digits.isdigit()
        assert gateway.issued == [ref]


class TestNotices:
    def test_amount_format(self):
        assert notices.format_amount(Decimal("100")) == "R100.00"
        assert notices.format_amount(Decimal("5.5"), "USD") == "USD 5.50"

    def test_rejection_carries_reason(self):
        kind, title, message = notices.verification_rejected(DocumentType.ENROLLMENT, "Expired")
        assert kind is NotificationType.VERIFICATION_UPDATE
        assert title == "Verification Rejected"
        assert "Reason: Expired" in message
        assert "proof of enrollment" in message

    def test_donation_received(self):
        kind, title, message = notices.donation_received(Decimal("100.00"), "ZAR", "Fees")
        assert kind is NotificationType.DONATION_RECEIVED
        assert title == "Donation Received"
        assert "R100.00" in message

    def test_archive_notice_names_the_deadline(self):
        _, _, message = notices.profile_archived(NOW)
        assert "2024-01-01" in message
