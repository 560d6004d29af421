"""
Retry policy with classification-aware handling.

Uses the error classifier to make retry decisions:
- Retryable errors: retry with decorrelated jitter backoff
- Conflict-ignorable errors: surfaced to the caller, which decides
- Fatal errors: fail immediately (no retry)

A RetryPolicy is an immutable strategy object. The backoff sequence is
generated fresh for every execute() call, so one policy can be shared by
concurrently retrying operations.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TypeVar

from core.errors.classifiers import classify
from core.errors.exceptions import DocumentStoreError, RetryCancelledError
from core.resilience.backoff import decorrelated_jitter_backoff
from core.types import ErrorClassifier, Verdict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Called once per retry with (error, retry number starting at 1, delay)
RetryHook = Callable[[Exception, int, timedelta], None]


def _error_fields(e: Exception) -> dict[str, object]:
    fields: dict[str, object] = {
        "error_type": type(e).__name__,
        "error_message": str(e)[:200],
    }
    if isinstance(e, DocumentStoreError):
        fields["status_code"] = e.status_code
        fields["error_kind"] = e.kind.value
    return fields


def _log_retry_failure(
    operation_name: str,
    e: Exception,
    verdict: Verdict,
    policy: "RetryPolicy",
    attempts: int,
) -> None:
    """Log why execute() is giving up on an error."""
    extra = {
        "operation": operation_name,
        "verdict": verdict.value,
        "total_attempts": attempts,
        **_error_fields(e),
    }

    if verdict == Verdict.CONFLICT_IGNORABLE:
        logger.debug(
            "Conflict for %s, returning to caller", operation_name, extra=extra
        )
        return

    if verdict == Verdict.FATAL:
        logger.warning(
            "Fatal error for %s, not retrying: %s",
            operation_name,
            str(e)[:200],
            extra=extra,
        )
        return

    extra["max_attempts"] = policy.max_attempts
    logger.error(
        "Max retries exhausted for %s: %s",
        operation_name,
        str(e)[:200],
        extra=extra,
    )


def _log_retry_attempt(
    operation_name: str,
    attempt: int,
    policy: "RetryPolicy",
    delay: timedelta,
    e: Exception,
) -> None:
    logger.warning(
        "Retryable error for %s, will retry",
        operation_name,
        extra={
            "operation": operation_name,
            "attempt": attempt,
            "max_attempts": policy.max_attempts,
            "delay_seconds": round(delay.total_seconds(), 3),
            "delay_source": "decorrelated_jitter",
            **_error_fields(e),
        },
    )


def _safe_invoke_on_retry(
    on_retry: RetryHook,
    error: Exception,
    attempt: int,
    delay: timedelta,
    operation_name: str,
) -> None:
    """Call the on_retry hook, swallowing and logging any errors."""
    try:
        on_retry(error, attempt, delay)
    except Exception as cb_err:
        logger.warning(
            "Error in on_retry callback for %s: %s",
            operation_name,
            str(cb_err)[:100],
            extra={
                "operation": operation_name,
                "callback_error": str(cb_err)[:100],
            },
        )


async def _backoff(delay: timedelta, cancel_event: asyncio.Event | None) -> bool:
    """Sleep for delay. Returns True if cancel_event was set before it elapsed."""
    if cancel_event is None:
        await asyncio.sleep(delay.total_seconds())
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay.total_seconds())
    except asyncio.TimeoutError:
        return False
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration and executor for a single async operation.

    An operation that keeps failing with a retryable error is invoked at
    most max_attempts + 1 times.
    """

    first_delay: timedelta = timedelta(seconds=1)
    max_attempts: int = 3
    classify: ErrorClassifier = classify
    max_delay: timedelta | None = None

    # Injectable random source for reproducible delays in tests
    rng: random.Random | None = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")
        if self.first_delay < timedelta(0):
            raise ValueError(f"first_delay must be non-negative, got {self.first_delay}")

    @classmethod
    def from_seconds(
        cls,
        first_delay_seconds: float,
        max_attempts: int,
        max_delay_seconds: float | None = None,
    ) -> "RetryPolicy":
        """Build a policy from plain numbers (e.g. YAML settings)."""
        return cls(
            first_delay=timedelta(seconds=float(first_delay_seconds)),
            max_attempts=int(max_attempts),
            max_delay=(
                timedelta(seconds=float(max_delay_seconds))
                if max_delay_seconds is not None
                else None
            ),
        )

    def delays(self):
        """Fresh backoff sequence of exactly max_attempts delays."""
        return decorrelated_jitter_backoff(
            self.first_delay, self.max_attempts, rng=self.rng, max_delay=self.max_delay
        )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        on_retry: RetryHook | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> T:
        """
        Run operation, retrying retryable failures.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            operation_name: Name used in logs
            on_retry: Hook invoked after each backoff sleep, right before the
                retry. Never invoked on the final give-up.
            cancel_event: When set, pending retries are abandoned with
                RetryCancelledError, waking a backoff sleep early. An
                in-flight call is never interrupted.

        Returns:
            The operation's result

        Raises:
            The last error from operation when it is not retryable or the
            retry budget is spent; RetryCancelledError on cancellation.
        """
        delays = self.delays()
        attempt = 0

        while True:
            try:
                result = await operation()
            except Exception as e:
                verdict = self.classify(e)
                if verdict != Verdict.RETRYABLE:
                    _log_retry_failure(operation_name, e, verdict, self, attempt + 1)
                    raise

                delay = next(delays, None)
                if delay is None:
                    _log_retry_failure(operation_name, e, verdict, self, attempt + 1)
                    raise

                attempt += 1
                _log_retry_attempt(operation_name, attempt, self, delay, e)

                if cancel_event is not None and cancel_event.is_set():
                    raise RetryCancelledError(operation_name, e) from e
                if await _backoff(delay, cancel_event):
                    raise RetryCancelledError(operation_name, e) from e

                if on_retry:
                    _safe_invoke_on_retry(on_retry, e, attempt, delay, operation_name)
                continue

            if attempt > 0:
                logger.info(
                    "Retry succeeded for %s after %d attempts",
                    operation_name,
                    attempt + 1,
                    extra={
                        "operation": operation_name,
                        "attempt": attempt + 1,
                        "max_attempts": self.max_attempts,
                    },
                )
            return result


# Policy used by point-read, query and upsert
DEFAULT_RETRY = RetryPolicy(first_delay=timedelta(seconds=1), max_attempts=3)


__all__ = [
    "RetryPolicy",
    "RetryHook",
    "DEFAULT_RETRY",
]
