"""Unit tests for the retry executor.

Tests cover:
1. Backoff and jitter math
2. Retry until success / exhaustion
3. Fatal classification (no retry)
4. Cancellation (before execute, during the retry wait)
5. Per-attempt deadline
6. Metrics and attempt logging
"""

import asyncio
import random
from typing import Any

import pytest

from tripgen.gateway.client import RemoteOperationError
from tripgen.models.common import ErrorKind
from tripgen.tools.executor import (
    CANCELLED_MESSAGE,
    DEADLINE_MESSAGE,
    AttemptLogger,
    CallContext,
    CancellationToken,
    GenerationError,
    OperationCancelledError,
    RetryExecutor,
    RetryMetrics,
    RetryPolicy,
    classify_error,
)


class RecordingMetrics(RetryMetrics):
    def __init__(self) -> None:
        self.latencies: list[tuple[str, str]] = []
        self.errors: list[tuple[str, str]] = []

    def record_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        self.latencies.append((operation, outcome))

    def inc_error(self, operation: str, reason: str) -> None:
        self.errors.append((operation, reason))


class RecordingLogger(AttemptLogger):
    def __init__(self) -> None:
        self.outcomes: list[str] = []

    def log_attempt(
        self, ctx: CallContext, attempt: int, outcome: str, *args: Any, **kwargs: Any
    ) -> None:
        self.outcomes.append(outcome)


class Flaky:
    """Async operation failing `failures` times before returning `value`."""

    def __init__(self, failures: int, error: Exception | None = None, value: str = "ok") -> None:
        self.failures = failures
        self.error = error or RemoteOperationError("service unavailable")
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


def make_executor(sleep_recorder, **kwargs: Any) -> RetryExecutor:
    return RetryExecutor(sleep_fn=sleep_recorder, rng=random.Random(1), **kwargs)


class TestRetryPolicy:
    """Test backoff computation."""

    def test_backoff_grows_geometrically(self) -> None:
        policy = RetryPolicy(base_delay_ms=1000, backoff_multiplier=2.0, max_delay_ms=10000)
        assert policy.backoff_ms(1) == 1000
        assert policy.backoff_ms(2) == 2000
        assert policy.backoff_ms(3) == 4000

    def test_backoff_is_capped(self) -> None:
        policy = RetryPolicy(base_delay_ms=1000, backoff_multiplier=2.0, max_delay_ms=5000)
        assert policy.backoff_ms(4) == 5000
        assert policy.backoff_ms(10) == 5000

    def test_max_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            RetryPolicy(max_attempts=0)

    def test_jitter_stays_within_bounds(self) -> None:
        executor = RetryExecutor(rng=random.Random(42))
        policy = RetryPolicy(base_delay_ms=1000, jitter_max_ms=1000)
        for _ in range(50):
            delay = executor.delay_seconds(policy, 1)
            assert 1.0 <= delay <= 2.0

    def test_zero_jitter_is_exact(self) -> None:
        executor = RetryExecutor()
        policy = RetryPolicy(base_delay_ms=1000, jitter_max_ms=0)
        assert executor.delay_seconds(policy, 2) == 2.0


class TestClassifyError:
    """Test failure classification."""

    @pytest.mark.parametrize(
        "message,kind",
        [
            ("permission-denied: not allowed", ErrorKind.permission_denied),
            ("UNAUTHENTICATED request", ErrorKind.permission_denied),
            ("invalid-argument: bad payload", ErrorKind.permission_denied),
            ("quota-exceeded for project", ErrorKind.quota_exceeded),
            ("resource-exhausted", ErrorKind.quota_exceeded),
            ("deadline-exceeded", ErrorKind.timeout),
            ("Failed to parse AI response", ErrorKind.server),
            ("response truncated", ErrorKind.server),
        ],
    )
    def test_fatal_markers(self, message: str, kind: ErrorKind) -> None:
        fatal = classify_error(RemoteOperationError(message))
        assert fatal is not None
        assert fatal.kind == kind

    def test_code_attribute_is_checked(self) -> None:
        fatal = classify_error(RemoteOperationError("denied", code="permission-denied"))
        assert fatal is not None
        assert fatal.kind == ErrorKind.permission_denied

    def test_deadline_uses_friendly_message(self) -> None:
        fatal = classify_error(RemoteOperationError("deadline-exceeded: took too long"))
        assert fatal is not None
        assert fatal.message == DEADLINE_MESSAGE

    def test_plain_errors_are_retryable(self) -> None:
        assert classify_error(RemoteOperationError("internal: boom")) is None
        assert classify_error(ConnectionError("reset by peer")) is None

    def test_fatal_generation_error_passes_through(self) -> None:
        error = GenerationError(ErrorKind.quota_exceeded, "over limit")
        assert classify_error(error) is error

    def test_timeout_is_not_retried_but_not_fatal(self) -> None:
        error = GenerationError(ErrorKind.timeout, "too slow")
        assert classify_error(error) is error
        assert error.is_fatal is False
        assert classify_error(RemoteOperationError("deadline-exceeded")).is_fatal is False


class TestRetryExecutor:
    """Test execute() behavior."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self, sleep_recorder) -> None:
        op = Flaky(failures=0)
        result = await make_executor(sleep_recorder).execute(op, RetryPolicy())
        assert result == "ok"
        assert op.calls == 1
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, sleep_recorder) -> None:
        op = Flaky(failures=2)
        policy = RetryPolicy(max_attempts=3, base_delay_ms=1000, jitter_max_ms=0)
        result = await make_executor(sleep_recorder).execute(op, policy)
        assert result == "ok"
        assert op.calls == 3
        assert sleep_recorder.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_default_kind(self, sleep_recorder) -> None:
        op = Flaky(failures=10, error=RemoteOperationError("service unavailable"))
        policy = RetryPolicy(max_attempts=3, jitter_max_ms=0)

        with pytest.raises(GenerationError) as exc_info:
            await make_executor(sleep_recorder).execute(op, policy, ErrorKind.server)

        assert op.calls == 3
        assert exc_info.value.kind == ErrorKind.server
        assert exc_info.value.message == "service unavailable"
        assert isinstance(exc_info.value.cause, RemoteOperationError)
        # No wait after the final attempt
        assert len(sleep_recorder.delays) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message,kind",
        [
            ("permission-denied: nope", ErrorKind.permission_denied),
            ("quota-exceeded: daily limit", ErrorKind.quota_exceeded),
        ],
    )
    async def test_fatal_errors_are_not_retried(
        self, sleep_recorder, message: str, kind: ErrorKind
    ) -> None:
        op = Flaky(failures=10, error=RemoteOperationError(message))

        with pytest.raises(GenerationError) as exc_info:
            await make_executor(sleep_recorder).execute(op, RetryPolicy(max_attempts=5))

        assert op.calls == 1
        assert exc_info.value.kind == kind
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_cancelled_token_prevents_any_attempt(self, sleep_recorder) -> None:
        op = Flaky(failures=0)
        token = CancellationToken(cancelled=True)

        with pytest.raises(OperationCancelledError, match=CANCELLED_MESSAGE):
            await make_executor(sleep_recorder).execute(op, RetryPolicy(), token=token)

        assert op.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_during_retry_wait_aborts_immediately(self) -> None:
        op = Flaky(failures=10)
        token = CancellationToken()
        waiting = asyncio.Event()

        async def long_sleep(seconds: float) -> None:
            waiting.set()
            await asyncio.sleep(3600)

        executor = RetryExecutor(sleep_fn=long_sleep)
        task = asyncio.create_task(executor.execute(op, RetryPolicy(max_attempts=3), token=token))
        await asyncio.wait_for(waiting.wait(), timeout=1)
        token.cancel()

        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(task, timeout=1)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_cancellation_raised_by_operation_is_not_retried(self, sleep_recorder) -> None:
        op = Flaky(failures=10, error=OperationCancelledError())

        with pytest.raises(OperationCancelledError):
            await make_executor(sleep_recorder).execute(op, RetryPolicy(max_attempts=3))

        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_attempt_timeout_surfaces_timeout_kind(self, sleep_recorder) -> None:
        calls = 0

        async def hangs() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(3600)
            return "never"

        policy = RetryPolicy(max_attempts=2, attempt_timeout_seconds=0.01, jitter_max_ms=0)
        with pytest.raises(GenerationError) as exc_info:
            await make_executor(sleep_recorder).execute(hangs, policy)

        assert calls == 2
        assert exc_info.value.kind == ErrorKind.timeout

    @pytest.mark.asyncio
    async def test_metrics_and_logs_record_each_attempt(self, sleep_recorder) -> None:
        metrics = RecordingMetrics()
        attempt_logger = RecordingLogger()
        executor = make_executor(sleep_recorder, metrics=metrics, logger=attempt_logger)
        ctx = CallContext(generation_id="gen_1", operation="searchActivities")

        await executor.execute(Flaky(failures=1), RetryPolicy(max_attempts=2), ctx=ctx)

        assert attempt_logger.outcomes == ["retry", "success"]
        assert metrics.latencies == [
            ("searchActivities", "retry"),
            ("searchActivities", "success"),
        ]
        assert metrics.errors == [("searchActivities", "retryable")]
