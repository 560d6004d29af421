"""
Tests for the classification-aware retry policy.

Covers:
    - invocation count bounds (max_attempts + 1)
    - no retry for fatal or conflict-ignorable errors
    - on_retry hook timing and count
    - cancellation between attempts
"""

import asyncio
import logging
import random
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

import core.resilience.retry as retry_module
from core.errors.exceptions import DocumentStoreError, RetryCancelledError
from core.resilience.retry import DEFAULT_RETRY, RetryPolicy
from core.types import ErrorKind, OperationKind, Verdict


def _error(status_code: int, kind: ErrorKind, operation=OperationKind.READ) -> DocumentStoreError:
    return DocumentStoreError(
        f"status {status_code}", status_code=status_code, kind=kind, operation=operation
    )


def unavailable():
    return _error(503, ErrorKind.SERVICE_UNAVAILABLE)


def not_found():
    return _error(404, ErrorKind.NOT_FOUND)


@pytest.fixture
def no_sleep(monkeypatch):
    """Record backoff sleeps instead of waiting."""
    sleep = AsyncMock()
    monkeypatch.setattr(retry_module.asyncio, "sleep", sleep)
    return sleep


class TestRetryPolicyConfig:

    def test_default_policy(self):
        assert DEFAULT_RETRY.first_delay == timedelta(seconds=1)
        assert DEFAULT_RETRY.max_attempts == 3

    def test_from_seconds(self):
        policy = RetryPolicy.from_seconds("0.5", "4", max_delay_seconds=10)
        assert policy.first_delay == timedelta(seconds=0.5)
        assert policy.max_attempts == 4
        assert policy.max_delay == timedelta(seconds=10)

    def test_rejects_negative_values(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=-1)
        with pytest.raises(ValueError):
            RetryPolicy(first_delay=timedelta(seconds=-1))

    def test_delays_are_fresh_per_call(self):
        policy = RetryPolicy(first_delay=timedelta(seconds=1), max_attempts=3)
        first = list(policy.delays())
        second = list(policy.delays())
        assert len(first) == len(second) == 3
        assert first != second

    def test_is_immutable(self):
        with pytest.raises(Exception):
            DEFAULT_RETRY.max_attempts = 10


class TestExecute:

    @pytest.mark.asyncio
    async def test_success_first_try(self, fast_policy):
        operation = AsyncMock(return_value="ok")
        assert await fast_policy.execute(operation) == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, fast_policy):
        operation = AsyncMock(side_effect=[unavailable(), unavailable(), "ok"])
        assert await fast_policy.execute(operation, "point_read") == "ok"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_always_retryable_runs_max_attempts_plus_one(self, fast_policy):
        def always_unavailable():
            raise unavailable()

        operation = AsyncMock(side_effect=always_unavailable)
        with pytest.raises(DocumentStoreError) as exc_info:
            await fast_policy.execute(operation)

        assert operation.await_count == 4
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_zero_attempts_runs_once(self):
        policy = RetryPolicy(first_delay=timedelta(0), max_attempts=0)
        operation = AsyncMock(side_effect=unavailable())
        with pytest.raises(DocumentStoreError):
            await policy.execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self, fast_policy):
        operation = AsyncMock(side_effect=not_found())
        on_retry = Mock()
        with pytest.raises(DocumentStoreError) as exc_info:
            await fast_policy.execute(operation, on_retry=on_retry)

        assert operation.await_count == 1
        assert exc_info.value.status_code == 404
        on_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_unclassified_error_is_not_retried(self, fast_policy):
        operation = AsyncMock(side_effect=RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            await fast_policy.execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_conflict_ignorable_is_surfaced_without_retry(self, fast_policy):
        conflict = _error(409, ErrorKind.CONFLICT, OperationKind.CREATE_RESOURCE)
        operation = AsyncMock(side_effect=conflict)
        with pytest.raises(DocumentStoreError) as exc_info:
            await fast_policy.execute(operation)
        assert exc_info.value is conflict
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_custom_classifier(self):
        policy = RetryPolicy(
            first_delay=timedelta(0), max_attempts=2, classify=lambda e: Verdict.RETRYABLE
        )
        operation = AsyncMock(side_effect=[ValueError("x"), "ok"])
        assert await policy.execute(operation) == "ok"


class TestOnRetryHook:

    @pytest.mark.asyncio
    async def test_hook_called_once_per_retry_not_on_give_up(self, fast_policy):
        errors = [unavailable() for _ in range(4)]
        operation = AsyncMock(side_effect=errors)
        on_retry = Mock()

        with pytest.raises(DocumentStoreError) as exc_info:
            await fast_policy.execute(operation, on_retry=on_retry)

        assert operation.await_count == 4
        assert on_retry.call_count == 3
        assert exc_info.value is errors[3]
        # Hook sees the error that triggered each retry, numbered from 1
        for i, c in enumerate(on_retry.call_args_list):
            error, attempt, delay = c.args
            assert error is errors[i]
            assert attempt == i + 1
            assert isinstance(delay, timedelta)

    @pytest.mark.asyncio
    async def test_hook_runs_after_backoff_sleep(self, no_sleep):
        order = []
        no_sleep.side_effect = lambda seconds: order.append(("sleep", seconds))
        policy = RetryPolicy(first_delay=timedelta(seconds=1), max_attempts=1, rng=random.Random(3))
        operation = AsyncMock(side_effect=[unavailable(), "ok"])

        await policy.execute(operation, on_retry=lambda e, n, d: order.append(("hook", n)))

        assert [step[0] for step in order] == ["sleep", "hook"]

    @pytest.mark.asyncio
    async def test_sleeps_for_backoff_delays(self, no_sleep):
        policy = RetryPolicy(first_delay=timedelta(seconds=1), max_attempts=3, rng=random.Random(9))
        expected = [d.total_seconds() for d in RetryPolicy(
            first_delay=timedelta(seconds=1), max_attempts=3, rng=random.Random(9)
        ).delays()]
        operation = AsyncMock(side_effect=[unavailable()] * 4)

        with pytest.raises(DocumentStoreError):
            await policy.execute(operation)

        assert [c.args[0] for c in no_sleep.await_args_list] == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_retries(self, fast_policy, caplog):
        operation = AsyncMock(side_effect=[unavailable(), "ok"])
        on_retry = Mock(side_effect=RuntimeError("hook broke"))

        with caplog.at_level(logging.WARNING, logger="core.resilience.retry"):
            assert await fast_policy.execute(operation, on_retry=on_retry) == "ok"

        assert "Error in on_retry callback" in caplog.text


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_before_retry(self, fast_policy):
        cancel = asyncio.Event()
        cancel.set()
        operation = AsyncMock(side_effect=unavailable())

        with pytest.raises(RetryCancelledError) as exc_info:
            await fast_policy.execute(operation, "query", cancel_event=cancel)

        assert operation.await_count == 1
        assert exc_info.value.last_error.status_code == 503

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_wakes_immediately(self):
        cancel = asyncio.Event()
        # rng pinned to 0.5 puts the first delay near 9 seconds
        rng = Mock(spec=random.Random)
        rng.random.return_value = 0.5
        policy = RetryPolicy(first_delay=timedelta(seconds=10), max_attempts=3, rng=rng)
        operation = AsyncMock(side_effect=[unavailable(), "ok"])
        on_retry = Mock()
        loop = asyncio.get_running_loop()

        task = asyncio.create_task(
            policy.execute(operation, cancel_event=cancel, on_retry=on_retry)
        )
        await asyncio.sleep(0.05)
        started = loop.time()
        cancel.set()

        with pytest.raises(RetryCancelledError):
            await task

        assert loop.time() - started < 0.5
        assert operation.await_count == 1
        on_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_event_sleeps_full_delay(self, no_sleep):
        policy = RetryPolicy(first_delay=timedelta(seconds=1), max_attempts=3, rng=random.Random(4))
        operation = AsyncMock(side_effect=[unavailable(), "ok"])

        assert await policy.execute(operation) == "ok"
        assert no_sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_unset_event_has_no_effect(self, fast_policy):
        operation = AsyncMock(side_effect=[unavailable(), "ok"])
        assert await fast_policy.execute(operation, cancel_event=asyncio.Event()) == "ok"


class TestLogging:

    @pytest.mark.asyncio
    async def test_logs_each_retry_and_exhaustion(self, fast_policy, caplog):
        operation = AsyncMock(side_effect=[unavailable()] * 4)

        with caplog.at_level(logging.DEBUG, logger="core.resilience.retry"):
            with pytest.raises(DocumentStoreError):
                await fast_policy.execute(operation, "upsert")

        retries = [r for r in caplog.records if r.getMessage().startswith("Retryable error")]
        assert [r.attempt for r in retries] == [1, 2, 3]
        assert retries[0].status_code == 503
        assert any("Max retries exhausted for upsert" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_logs_fatal_verdict(self, fast_policy, caplog):
        with caplog.at_level(logging.WARNING, logger="core.resilience.retry"):
            with pytest.raises(DocumentStoreError):
                await fast_policy.execute(AsyncMock(side_effect=not_found()), "point_read")

        record = next(r for r in caplog.records if "Fatal error" in r.getMessage())
        assert record.verdict == "fatal"
        assert record.error_kind == "not_found"
