"""Itinerary orchestrator - validate, run a strategy, report.

Every exit path returns a GenerationResult and clears `is_generating`. Exceptions
never escape `generate_itinerary`.
"""

import logging
import time
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from tripgen.config import Settings, get_settings, retry_policy_for
from tripgen.gateway.client import (
    HttpTransport,
    Operation,
    OperationResult,
    RemoteOperationGateway,
    RemoteTransport,
)
from tripgen.models.common import ErrorKind
from tripgen.models.itinerary import GenerationProgress, GenerationResult
from tripgen.models.request import GenerationRequest, UserInfo
from tripgen.orchestration.assembler import new_generation_id
from tripgen.orchestration.fanout import CallFn, compute_trip_days
from tripgen.orchestration.persistence import PersistenceWriter
from tripgen.orchestration.progress import ProgressListener, ProgressTracker
from tripgen.orchestration.strategies import (
    AIFirstStrategy,
    ContentFirstStrategy,
    GenerationContext,
    GenerationStrategy,
)
from tripgen.tools.executor import (
    AttemptLogger,
    CallContext,
    CancellationToken,
    GenerationError,
    OperationCancelledError,
    RetryExecutor,
    RetryMetrics,
    RetryPolicy,
)
from tripgen.utils.logging import StructuredAttemptLogger, configure_logging
from tripgen.utils.sanitize import SanitizationLimits, sanitize_request

logger = logging.getLogger(__name__)

ALREADY_RUNNING_MESSAGE = "A generation is already in progress"


class ItineraryOrchestrator:
    """Runs one generation at a time and exposes its progress."""

    def __init__(
        self,
        gateway: RemoteOperationGateway,
        strategy: GenerationStrategy,
        policy: RetryPolicy,
        executor: RetryExecutor | None = None,
        metrics: RetryMetrics | None = None,
        limits: SanitizationLimits | None = None,
        listener: ProgressListener | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            gateway: Remote operation gateway
            strategy: Generation architecture to run
            policy: Retry policy applied to every remote call
            executor: Retry executor (optional, built with the given metrics)
            metrics: Metrics recorder (optional, defaults to no-op)
            limits: Input sanitization limits
            listener: Called with every progress change
        """
        self._gateway = gateway
        self._strategy = strategy
        self._policy = policy
        self._metrics = metrics or RetryMetrics()
        self._executor = executor or RetryExecutor(
            metrics=self._metrics, logger=StructuredAttemptLogger()
        )
        self._limits = limits or SanitizationLimits()
        self._tracker = ProgressTracker(strategy.steps, listener)
        self._token: CancellationToken | None = None

        self.is_generating = False
        self.error: GenerationError | None = None

    @property
    def strategy(self) -> GenerationStrategy:
        return self._strategy

    @property
    def progress(self) -> GenerationProgress:
        return self._tracker.current

    def cancel(self) -> None:
        """Cancel the active generation; state is reset before this returns."""
        if self._token is not None:
            self._token.cancel()
            logger.info("Generation cancelled by caller")
        self.is_generating = False
        self.error = None
        self._tracker.reset()

    async def generate_itinerary(
        self,
        request: GenerationRequest | Mapping[str, Any],
        current_user: UserInfo | None = None,
    ) -> GenerationResult:
        """Generate, assemble and save an itinerary.

        Args:
            request: Generation request (model or camelCase mapping)
            current_user: Signed-in user; takes precedence over request.user_info

        Returns:
            GenerationResult; failures are reported in `error`/`error_kind`
        """
        if self.is_generating:
            return GenerationResult(
                success=False, error=ALREADY_RUNNING_MESSAGE, error_kind=ErrorKind.validation
            )

        token = CancellationToken()
        self._token = token
        self.is_generating = True
        self.error = None
        self._tracker.reset()
        generation_id = new_generation_id()
        started_at = time.monotonic()

        try:
            sanitized, user_id = self._validate(request, current_user)
            assert sanitized.start_date is not None and sanitized.end_date is not None

            ctx = GenerationContext(
                request=sanitized,
                user_id=user_id,
                generation_id=generation_id,
                trip_days=compute_trip_days(sanitized.start_date, sanitized.end_date),
                token=token,
                progress=self._tracker,
                call=self._bind_call(generation_id, token),
                persistence=PersistenceWriter(self._bind_call(generation_id, token)),
                started_at=started_at,
            )
            logger.info(
                f"[{generation_id}] starting {self._strategy.name} generation for "
                f"{sanitized.destination} ({ctx.trip_days} days)",
                extra={
                    "structured": {
                        "generation_id": generation_id,
                        "strategy": self._strategy.name,
                        "trip_days": ctx.trip_days,
                    }
                },
            )
            result = await self._strategy.run(ctx)

            outcome = "partial" if result.save_error else "success"
            self._metrics.inc_generation(self._strategy.name, outcome)
            logger.info(
                f"[{generation_id}] generation finished ({outcome}) in "
                f"{(time.monotonic() - started_at) * 1000:.0f}ms"
            )
            return result

        except OperationCancelledError as e:
            self._metrics.inc_generation(self._strategy.name, "cancelled")
            logger.info(f"[{generation_id}] generation cancelled")
            return GenerationResult(success=False, error=e.message, error_kind=e.kind)

        except GenerationError as e:
            return self._fail(generation_id, token, e)

        except Exception as e:
            logger.exception(f"[{generation_id}] unexpected generation failure")
            return self._fail(
                generation_id,
                token,
                GenerationError(
                    ErrorKind.unknown, str(e) or "Unknown error occurred", cause=e
                ),
            )

        finally:
            # A run cancelled earlier may finish after a newer run has taken over
            if self._token is token:
                self.is_generating = False
                self._token = None

    def _fail(
        self, generation_id: str, token: CancellationToken, error: GenerationError
    ) -> GenerationResult:
        if self._token is token and not token.cancelled:
            self.error = error
        self._metrics.inc_generation(self._strategy.name, "failed")
        logger.warning(
            f"[{generation_id}] generation failed ({error.kind.value}): {error.message}",
            extra={"structured": {"generation_id": generation_id, "kind": error.kind.value}},
        )
        return GenerationResult(success=False, error=error.message, error_kind=error.kind)

    def _validate(
        self,
        request: GenerationRequest | Mapping[str, Any],
        current_user: UserInfo | None,
    ) -> tuple[GenerationRequest, str]:
        """Parse and sanitize the request; nothing remote is called before this passes.

        Raises:
            GenerationError: Validation failure
        """
        if not isinstance(request, GenerationRequest):
            try:
                request = GenerationRequest.model_validate(request)
            except ValidationError as e:
                raise GenerationError(
                    ErrorKind.validation, f"Invalid request: {e.error_count()} invalid field(s)"
                ) from e

        sanitized = sanitize_request(request, self._limits)
        if not sanitized.destination or not sanitized.start_date or not sanitized.end_date:
            raise GenerationError(
                ErrorKind.validation,
                "Missing required fields: destination, startDate, or endDate",
            )

        user_id = ""
        if current_user is not None and current_user.uid:
            user_id = current_user.uid
        elif sanitized.user_info is not None:
            user_id = sanitized.user_info.uid
        if not user_id.strip():
            raise GenerationError(ErrorKind.validation, "User ID is required to save itinerary")

        if sanitized.end_date < sanitized.start_date:
            raise GenerationError(ErrorKind.validation, "End date must not be before start date")

        if current_user is not None and sanitized.user_info is None:
            sanitized = sanitized.model_copy(update={"user_info": current_user})
        return sanitized, user_id

    def _bind_call(self, generation_id: str, token: CancellationToken) -> CallFn:
        """Retrying gateway call bound to one generation's token."""

        async def call(operation: Operation, payload: Mapping[str, Any]) -> OperationResult:
            return await self._executor.execute(
                lambda: self._gateway.call(operation, payload),
                self._policy,
                ErrorKind.network,
                token,
                ctx=CallContext(generation_id=generation_id, operation=operation.value),
            )

        return call


def build_orchestrator(
    settings: Settings | None = None,
    transport: RemoteTransport | None = None,
    listener: ProgressListener | None = None,
    attempt_logger: AttemptLogger | None = None,
) -> ItineraryOrchestrator:
    """Wire an orchestrator from settings.

    Args:
        settings: Settings (defaults to the cached environment settings)
        transport: Transport override (defaults to HttpTransport on the gateway URL)
        listener: Progress listener
        attempt_logger: Attempt logger override (defaults to structured logging)
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    strategy: GenerationStrategy = (
        AIFirstStrategy() if settings.generation_strategy == "ai_first" else ContentFirstStrategy()
    )

    metrics: RetryMetrics
    if settings.metrics_enabled:
        from tripgen.utils.metrics import PrometheusRetryMetrics

        metrics = PrometheusRetryMetrics()
    else:
        metrics = RetryMetrics()

    transport = transport or HttpTransport(
        base_url=settings.gateway_base_url,
        timeout_seconds=settings.gateway_timeout_seconds,
        auth_token=settings.gateway_auth_token,
    )
    return ItineraryOrchestrator(
        gateway=RemoteOperationGateway(transport),
        strategy=strategy,
        policy=retry_policy_for(strategy.name, settings),
        executor=RetryExecutor(
            metrics=metrics, logger=attempt_logger or StructuredAttemptLogger()
        ),
        metrics=metrics,
        limits=SanitizationLimits(
            special_requests=settings.special_requests_max_length,
            must_include_tag=settings.tag_max_length,
            must_avoid_tag=settings.tag_max_length,
            max_tags=settings.max_tags,
        ),
        listener=listener,
    )
