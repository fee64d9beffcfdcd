"""
Tests for bounded retry (``unifund_services.retry``).

Covers the backoff schedule, classification of transient failures,
exhaustion into DependencyError and the per-attempt timeout.
"""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from unifund_config.schema import RetrySettings
from unifund_kernel.exceptions import DependencyError, InvalidStateError
from unifund_services.retry import RetryPolicy, call_with_retry, is_transient


def _flaky(failures: int, exc_factory=lambda: ConnectionError("reset")):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc_factory()
        return "ok"

    return fn, calls


class TestRetryPolicy:
    def test_defaults_match_settings(self):
        assert RetryPolicy.from_settings(RetrySettings()) == RetryPolicy()

    def test_delay_schedule(self):
        policy = RetryPolicy(base_delay=1.5, multiplier=2.0, max_delay=30.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.5, 3.0, 6.0]

    def test_delay_capped(self):
        policy = RetryPolicy(base_delay=10, multiplier=10, max_delay=30)
        assert policy.delay_for(3) == 30


class TestIsTransient:
    def test_operational_error(self):
        assert is_transient(OperationalError("SELECT 1", {}, Exception("gone away")))

    @pytest.mark.parametrize("exc", [TimeoutError(), ConnectionError()])
    def test_network_errors(self, exc):
        assert is_transient(exc)

    def test_domain_errors_are_not_transient(self):
        assert not is_transient(InvalidStateError("Campaign", "c", "rejected", "activate"))
        assert not is_transient(ValueError("bad"))


class TestCallWithRetry:
    def test_succeeds_after_transient_failures(self):
        fn, calls = _flaky(2)
        sleeps = []

        result = call_with_retry(
            fn, policy=RetryPolicy(), dependency="database", sleep=sleeps.append,
        )

        assert result == "ok"
        assert calls["n"] == 3
        assert sleeps == [1.5, 3.0]

    def test_exhaustion_raises_dependency_error(self, captured_logs):
        fn, calls = _flaky(10)

        with pytest.raises(DependencyError) as exc_info:
            call_with_retry(fn, policy=RetryPolicy(), dependency="database", sleep=lambda s: None)

        assert calls["n"] == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.dependency == "database"
        messages = [r["message"] for r in captured_logs()]
        assert messages.count("retryable_failure") == 3
        assert "retries_exhausted" in messages

    def test_non_transient_propagates_immediately(self):
        fn, calls = _flaky(1, lambda: ValueError("bad input"))

        with pytest.raises(ValueError):
            call_with_retry(fn, policy=RetryPolicy(), dependency="database", sleep=lambda s: None)
        assert calls["n"] == 1

    def test_on_retry_hook(self):
        fn, _ = _flaky(1)
        seen = []

        call_with_retry(
            fn,
            policy=RetryPolicy(),
            dependency="database",
            sleep=lambda s: None,
            on_retry=lambda attempt, exc: seen.append((attempt, type(exc).__name__)),
        )

        assert seen == [(1, "ConnectionError")]

    def test_attempt_timeout(self):
        release = threading.Event()
        calls = {"n": 0}

        def hang():
            calls["n"] += 1
            release.wait(5)
            return "late"

        policy = RetryPolicy(max_attempts=2, attempt_timeout=0.05)
        try:
            with pytest.raises(DependencyError):
                call_with_retry(
                    hang, policy=policy, dependency="document_store.upload",
                    use_timeout=True, sleep=lambda s: None,
                )
        finally:
            release.set()
        assert calls["n"] == 2
