"""
unifund_services.retry -- bounded retry with exponential backoff.

Responsibility:
    Re-runs an idempotent callable after transient failures (dropped
    database connections, serialization failures, collaborator timeouts)
    and converts exhaustion into DependencyError.

Architecture position:
    Services layer.  Used by the WorkflowCoordinator around each unit of
    work and by ResilientDocumentStore around collaborator calls.

Invariants:
    - At most ``max_attempts`` calls.
    - Delay before attempt n+1 is base * multiplier**(n-1), capped at
      max_delay.
    - Non-transient exceptions propagate unchanged on the first raise.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from unifund_config.schema import RetrySettings
from unifund_kernel.exceptions import DependencyError
from unifund_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """True for failures worth retrying."""
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (TimeoutError, ConnectionError))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.5
    multiplier: float = 2.0
    max_delay: float = 30.0
    attempt_timeout: float | None = 45.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay_seconds,
            multiplier=settings.multiplier,
            max_delay=settings.max_delay_seconds,
            attempt_timeout=settings.attempt_timeout_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)


def _call_with_timeout(fn: Callable[[], T], timeout: float) -> T:
    # The worker cannot be cancelled; a timed-out call finishes in the
    # background and its result is discarded.
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="unifund-call")
    try:
        return executor.submit(fn).result(timeout=timeout)
    finally:
        executor.shutdown(wait=False)


def call_with_retry(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    dependency: str,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    use_timeout: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    """
    Call ``fn`` until it succeeds or the policy is exhausted.

    Args:
        fn: Zero-argument callable.  Must be safe to repeat.
        policy: Attempt count and backoff.
        dependency: Name reported in logs and in DependencyError.
        is_retryable: Classifier for exceptions raised by ``fn``.
        use_timeout: Bound each attempt by ``policy.attempt_timeout``.
        sleep: Injected for tests.
        on_retry: Hook run after a retryable failure, before sleeping
            (the coordinator rolls its session back here).

    Raises:
        DependencyError: after ``policy.max_attempts`` retryable failures.
        Exception: any non-retryable exception from ``fn``, unchanged.
    """
    last: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            if use_timeout and policy.attempt_timeout:
                return _call_with_timeout(fn, policy.attempt_timeout)
            return fn()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            last = exc
            logger.warning(
                "retryable_failure",
                extra={
                    "dependency": dependency,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "error_type": type(exc).__name__,
                },
            )
            if on_retry is not None:
                on_retry(attempt, exc)
            if attempt < policy.max_attempts:
                sleep(policy.delay_for(attempt))

    logger.error(
        "retries_exhausted",
        extra={"dependency": dependency, "attempts": policy.max_attempts},
    )
    raise DependencyError(dependency, policy.max_attempts, last)
