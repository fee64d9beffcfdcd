"""Tests for the structured logging system (unifund_kernel/logging_config.py)."""

import json
import logging
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from unifund_kernel.domain.lifecycle import CampaignStatus
from unifund_kernel.exceptions import InvalidStateError, PartialCascadeError
from unifund_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def emit():
    """Configure a JSON handler on a buffer; returns (logger, read_records)."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)

    def records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return get_logger("test"), records


class TestStructuredFormatter:

    def test_envelope(self, emit):
        logger, records = emit
        logger.info("cascade_started")

        [record] = records()
        assert record["message"] == "cascade_started"
        assert record["level"] == "INFO"
        assert record["logger"] == "unifund_kernel.test"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_coerced(self, emit):
        logger, records = emit
        donation_id = uuid4()
        logger.info(
            "campaign_credited",
            extra={
                "donation_id": donation_id,
                "amount": Decimal("100.00"),
                "status": CampaignStatus.ACTIVE,
                "grace": timedelta(days=1),
                "roles": frozenset({"student", "admin"}),
            },
        )

        record = records()[0]
        assert record["donation_id"] == str(donation_id)
        assert record["amount"] == "100.00"
        assert record["status"] == "active"
        assert record["grace"] == 86400.0
        assert record["roles"] == ["admin", "student"]

    def test_document_bytes_never_logged(self, emit):
        logger, records = emit
        logger.debug("document_uploaded", extra={"content": b"%PDF-1.4 secret"})

        assert records()[0]["content"] == "<15 bytes>"

    def test_context_merged(self, emit):
        logger, records = emit
        with LogContext.bind(correlation_id="c-1", operation="approve_campaign"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = records()
        assert inside["correlation_id"] == "c-1"
        assert inside["operation"] == "approve_campaign"
        assert "correlation_id" not in outside

    def test_plain_exception(self, emit):
        logger, records = emit
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = records()[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_workflow_exception_fields(self, emit):
        logger, records = emit
        try:
            raise InvalidStateError("Campaign", "c-1", "rejected", "activate")
        except InvalidStateError:
            logger.error("state_error", exc_info=True)

        record = records()[0]
        assert record["exc_code"] == "INVALID_STATE"
        assert record["exc_entity_type"] == "Campaign"
        assert record["exc_current_state"] == "rejected"
        assert record["exc_requested"] == "activate"

    def test_partial_cascade_carries_steps_and_cause(self, emit):
        logger, records = emit
        steps = [{"entity_type": "Student", "to_state": "rejected"}]
        try:
            try:
                raise RuntimeError("rollback lost")
            except RuntimeError as rollback_exc:
                raise PartialCascadeError("reject_verification", "r-1", steps) from rollback_exc
        except PartialCascadeError:
            logger.critical("cascade_partial", exc_info=True)

        record = records()[0]
        assert record["exc_code"] == "PARTIAL_CASCADE"
        assert record["exc_applied_steps"] == steps
        assert record["exc_cause_type"] == "RuntimeError"


class TestLogContext:

    def test_set_keeps_known_fields_only(self):
        LogContext.set(correlation_id="x", actor_id="y", mood="calm", entity_id=None)
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_values_stringified(self):
        actor = uuid4()
        LogContext.set(actor_id=actor)
        assert LogContext.get_all()["actor_id"] == str(actor)

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_nested_bind_restores(self):
        with LogContext.bind(correlation_id="outer", operation="delete_campaign"):
            with LogContext.bind(cascade_id="k-1"):
                assert LogContext.get_all() == {
                    "correlation_id": "outer",
                    "operation": "delete_campaign",
                    "cascade_id": "k-1",
                }
            assert "cascade_id" not in LogContext.get_all()
        assert LogContext.get_all() == {}

    def test_bind_restores_after_exception(self):
        with pytest.raises(KeyError):
            with LogContext.bind(correlation_id="doomed"):
                raise KeyError("x")
        assert LogContext.get_all() == {}

    def test_field_names(self):
        assert set(CONTEXT_FIELDS) == {
            "correlation_id", "actor_id", "operation", "entity_id", "cascade_id",
        }


class TestConfigureLogging:

    def test_idempotent(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("unifund_kernel").handlers) == 1

    def test_default_level_drops_debug(self):
        stream = StringIO()
        configure_logging(handler=logging.StreamHandler(stream))
        logger = get_logger("test")
        logger.debug("hidden")
        logger.info("shown")

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["shown"]

    def test_level_by_name(self):
        configure_logging(handler=logging.StreamHandler(StringIO()), level="warning")
        assert logging.getLogger("unifund_kernel").level == logging.WARNING

    def test_unknown_level_name(self):
        with pytest.raises(ValueError):
            configure_logging(level="LOUD")
        # the failed call did not count as configuring
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("unifund_kernel").handlers) == 1

    def test_services_log_under_kernel_namespace(self):
        logger = get_logger("services.workflow_coordinator")
        assert logger.name == "unifund_kernel.services.workflow_coordinator"
        assert logger.parent.name in ("unifund_kernel.services", "unifund_kernel")
