"""Async retry executor with exponential backoff, jitter, and cancellation.

Implements remote-call execution with:
- Bounded attempts with geometric backoff capped at a maximum delay
- Random jitter added to every wait so clients do not retry in lockstep
- Error classification (fatal kinds abort immediately, others are retried)
- Optional per-attempt deadline
- Cooperative cancellation, checked before each attempt and during waits
- Metrics and structured logging
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from tripgen.models.common import FATAL_ERROR_KINDS, NON_RETRYABLE_ERROR_KINDS, ErrorKind

T = TypeVar("T")

CANCELLED_MESSAGE = "Operation was cancelled"
DEADLINE_MESSAGE = "Request timed out. Please try again with a shorter trip duration."

PERMISSION_MARKERS = ("permission-denied", "unauthenticated", "invalid-argument")
QUOTA_MARKERS = ("quota-exceeded", "resource-exhausted")
DEADLINE_MARKERS = ("deadline-exceeded", "deadline_exceeded")
TRUNCATION_MARKERS = ("failed to parse ai response", "truncated")


# Exception types
class GenerationError(Exception):
    """Classified failure surfaced by the generation pipeline."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        code: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.cause = cause

    @property
    def is_fatal(self) -> bool:
        return self.kind in FATAL_ERROR_KINDS

    def __repr__(self) -> str:
        return f"GenerationError(kind={self.kind.value!r}, message={self.message!r})"


class OperationCancelledError(GenerationError):
    """The generation was cancelled by the caller."""

    def __init__(self, message: str = CANCELLED_MESSAGE) -> None:
        super().__init__(ErrorKind.unknown, message)


@dataclass
class CancellationToken:
    """Token for cooperative cancellation of one generation."""

    cancelled: bool = False
    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def __post_init__(self) -> None:
        if self.cancelled:
            self._event.set()

    def cancel(self) -> None:
        """Signal cancellation to every holder of this token."""
        self.cancelled = True
        self._event.set()

    def throw_if_cancelled(self) -> None:
        """Raise OperationCancelledError if cancelled."""
        if self.cancelled:
            raise OperationCancelledError()

    async def wait(
        self,
        seconds: float,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Sleep for `seconds`, aborting as soon as the token is cancelled."""
        self.throw_if_cancelled()
        sleeper = asyncio.ensure_future(sleep_fn(seconds))
        watcher = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, watcher):
                if not task.done():
                    task.cancel()
        self.throw_if_cancelled()


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for remote calls."""

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0
    jitter_max_ms: int = 1000
    attempt_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def backoff_ms(self, attempt: int) -> float:
        """Delay before the attempt following `attempt` (1-based), without jitter."""
        delay = self.base_delay_ms * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_delay_ms)


@dataclass(frozen=True)
class CallContext:
    """Context for one remote call, used for logs and metrics."""

    generation_id: str | None
    operation: str


def classify_error(error: BaseException) -> GenerationError | None:
    """Map a failure to a non-retryable GenerationError, or None if it is retryable."""
    if isinstance(error, GenerationError) and error.kind in NON_RETRYABLE_ERROR_KINDS:
        return error

    code = getattr(error, "code", None)
    haystack = f"{error} {code or ''}".lower()

    if any(marker in haystack for marker in PERMISSION_MARKERS):
        return GenerationError(ErrorKind.permission_denied, str(error), code=code, cause=error)
    if any(marker in haystack for marker in QUOTA_MARKERS):
        return GenerationError(ErrorKind.quota_exceeded, str(error), code=code, cause=error)
    if any(marker in haystack for marker in DEADLINE_MARKERS):
        return GenerationError(ErrorKind.timeout, DEADLINE_MESSAGE, code=code, cause=error)
    if any(marker in haystack for marker in TRUNCATION_MARKERS):
        return GenerationError(ErrorKind.server, str(error), code=code, cause=error)
    return None


# Metrics interface (implemented by tripgen.utils.metrics)
class RetryMetrics:
    """Interface for remote call metrics."""

    def record_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record remote call latency."""
        pass

    def inc_error(self, operation: str, reason: str) -> None:
        """Increment error counter."""
        pass

    def inc_generation(self, strategy: str, outcome: str) -> None:
        """Count a finished generation."""
        pass


# Logging interface (implemented by tripgen.utils.logging)
class AttemptLogger:
    """Interface for structured attempt logging."""

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
        retry_in_ms: float | None = None,
    ) -> None:
        """Log one remote call attempt."""
        pass


class RetryExecutor:
    """Runs zero-argument async operations under a RetryPolicy."""

    def __init__(
        self,
        metrics: RetryMetrics | None = None,
        logger: AttemptLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
            rng: Random source for jitter (default: module-level random)
        """
        self._metrics = metrics or RetryMetrics()
        self._logger = logger or AttemptLogger()
        self._sleep = sleep_fn or asyncio.sleep
        self._rng = rng or random.Random()

    def delay_seconds(self, policy: RetryPolicy, attempt: int) -> float:
        """Backoff plus jitter, in seconds."""
        jitter_ms = self._rng.uniform(0, policy.jitter_max_ms) if policy.jitter_max_ms > 0 else 0.0
        return (policy.backoff_ms(attempt) + jitter_ms) / 1000

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        default_error_kind: ErrorKind = ErrorKind.network,
        token: CancellationToken | None = None,
        *,
        ctx: CallContext | None = None,
    ) -> T:
        """Execute operation with retries.

        Args:
            operation: Async thunk performing one attempt
            policy: Attempt count and backoff configuration
            default_error_kind: Kind attached to the error once attempts are exhausted
            token: Cancellation token (optional, defaults to not cancelled)
            ctx: Call context for logs and metrics

        Returns:
            Result of the first successful attempt

        Raises:
            OperationCancelledError: Token was cancelled before an attempt or during a wait
            GenerationError: Fatal classification, or all attempts exhausted
        """
        if token is None:
            token = CancellationToken()
        if ctx is None:
            ctx = CallContext(generation_id=None, operation="operation")

        last_error: BaseException | None = None
        timed_out = False

        for attempt in range(1, policy.max_attempts + 1):
            # Check cancellation before each attempt
            token.throw_if_cancelled()

            attempt_start = time.monotonic()
            try:
                if policy.attempt_timeout_seconds:
                    result = await asyncio.wait_for(
                        operation(), timeout=policy.attempt_timeout_seconds
                    )
                else:
                    result = await operation()

                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                self._metrics.record_latency(ctx.operation, "success", elapsed_ms)
                self._logger.log_attempt(ctx, attempt, "success", elapsed_ms)
                return result

            except OperationCancelledError:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                self._metrics.record_latency(ctx.operation, "cancelled", elapsed_ms)
                self._logger.log_attempt(
                    ctx, attempt, "cancelled", elapsed_ms, error_reason="cancelled"
                )
                raise

            except Exception as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e
                timed_out = isinstance(e, TimeoutError)

                fatal = classify_error(e)
                if fatal is not None:
                    self._metrics.record_latency(ctx.operation, "fatal", elapsed_ms)
                    self._metrics.inc_error(ctx.operation, fatal.kind.value)
                    self._logger.log_attempt(
                        ctx, attempt, "fatal", elapsed_ms, error_reason=fatal.kind.value
                    )
                    raise fatal from e

                self._metrics.inc_error(ctx.operation, "timeout" if timed_out else "retryable")

                if attempt < policy.max_attempts:
                    delay = self.delay_seconds(policy, attempt)
                    self._metrics.record_latency(ctx.operation, "retry", elapsed_ms)
                    self._logger.log_attempt(
                        ctx,
                        attempt,
                        "retry",
                        elapsed_ms,
                        error_reason=type(e).__name__,
                        retry_in_ms=delay * 1000,
                    )
                    await token.wait(delay, self._sleep)
                    continue

                self._metrics.record_latency(ctx.operation, "exhausted", elapsed_ms)
                self._logger.log_attempt(
                    ctx, attempt, "exhausted", elapsed_ms, error_reason=type(e).__name__
                )

        # All attempts exhausted
        assert last_error is not None
        if timed_out:
            raise GenerationError(
                ErrorKind.timeout,
                f"{ctx.operation} timed out after {policy.max_attempts} attempts",
                cause=last_error,
            ) from last_error
        raise GenerationError(
            default_error_kind,
            str(last_error) or f"{ctx.operation} failed",
            code=getattr(last_error, "code", None),
            cause=last_error,
        ) from last_error
