"""Prometheus metrics for remote calls and generations."""

from prometheus_client import Counter, Histogram

remote_call_latency_ms = Histogram(
    "remote_call_latency_ms",
    "Remote operation attempt latency in milliseconds",
    ["operation", "outcome"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000],
)

remote_call_errors_total = Counter(
    "remote_call_errors_total",
    "Total remote operation errors",
    ["operation", "reason"],
)

itinerary_generations_total = Counter(
    "itinerary_generations_total",
    "Total itinerary generations by outcome",
    ["strategy", "outcome"],
)


class PrometheusRetryMetrics:
    """Prometheus-based remote call metrics implementation."""

    def record_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record remote call latency."""
        remote_call_latency_ms.labels(operation=operation, outcome=outcome).observe(latency_ms)

    def inc_error(self, operation: str, reason: str) -> None:
        """Increment error counter."""
        remote_call_errors_total.labels(operation=operation, reason=reason).inc()

    def inc_generation(self, strategy: str, outcome: str) -> None:
        """Count a finished generation (success, partial, failed, cancelled)."""
        itinerary_generations_total.labels(strategy=strategy, outcome=outcome).inc()
