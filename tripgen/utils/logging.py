"""Structured logging for remote call attempts."""

import logging
import sys
from typing import Any

from tripgen.tools.executor import CallContext

logger = logging.getLogger(__name__)

_LOGGING_CONFIGURED = False


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging once. Safe to call multiple times."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
    )
    _LOGGING_CONFIGURED = True


class StructuredAttemptLogger:
    """Structured logger for remote call attempts."""

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
        retry_in_ms: float | None = None,
    ) -> None:
        """Log one attempt with structured data."""
        log_data: dict[str, Any] = {
            "generation_id": ctx.generation_id,
            "operation": ctx.operation,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason
        if retry_in_ms is not None:
            log_data["retry_in_ms"] = round(retry_in_ms, 2)

        log_msg = f"Remote call: {ctx.operation} - {outcome}"
        if retry_in_ms is not None:
            log_msg += f" (attempt {attempt}, retrying in {retry_in_ms:.0f}ms)"

        if outcome in ("success", "cancelled"):
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
