"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from durable_queue.constants import (
    METRIC_CLAIM_CONFLICTS,
    METRIC_MESSAGES_COMPLETED,
    METRIC_MESSAGES_RESERVED,
    METRIC_MESSAGES_SUBMITTED,
    METRIC_QUEUE_DEPTH,
    METRIC_RESERVATIONS_EXPIRED,
    METRIC_RESERVE_WAIT,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for queues.

    Collects metrics for:
    - Queue depth (ready messages)
    - Submissions, reservations and completions
    - Lost claims and expired reservations
    - Time spent waiting in reserve/take
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of ready messages in the queue",
            ["queue"],
            registry=self._registry,
        )

        self.messages_submitted = Counter(
            METRIC_MESSAGES_SUBMITTED,
            "Total number of messages submitted",
            ["queue"],
            registry=self._registry,
        )

        self.messages_reserved = Counter(
            METRIC_MESSAGES_RESERVED,
            "Total number of messages reserved",
            ["queue"],
            registry=self._registry,
        )

        self.messages_completed = Counter(
            METRIC_MESSAGES_COMPLETED,
            "Total number of reservations ended, by outcome",
            ["queue", "outcome"],
            registry=self._registry,
        )

        self.claim_conflicts = Counter(
            METRIC_CLAIM_CONFLICTS,
            "Total number of claims lost to a concurrent consumer",
            ["queue"],
            registry=self._registry,
        )

        self.reservations_expired = Counter(
            METRIC_RESERVATIONS_EXPIRED,
            "Total number of expired reservations returned to the queue",
            ["queue"],
            registry=self._registry,
        )

        self.reserve_wait = Histogram(
            METRIC_RESERVE_WAIT,
            "Time spent waiting for a message in seconds",
            ["queue"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Get the registry the metrics are registered on."""
        return self._registry

    def record_submitted(self, queue: str) -> None:
        """Record a message submission."""
        self.messages_submitted.labels(queue=queue).inc()

    def record_reserved(self, queue: str, wait_seconds: float) -> None:
        """Record a won claim and how long the consumer waited for it."""
        self.messages_reserved.labels(queue=queue).inc()
        self.reserve_wait.labels(queue=queue).observe(wait_seconds)

    def record_completed(self, queue: str, outcome: str) -> None:
        """Record the end of a reservation."""
        self.messages_completed.labels(queue=queue, outcome=outcome).inc()

    def record_claim_conflict(self, queue: str) -> None:
        """Record a lost claim."""
        self.claim_conflicts.labels(queue=queue).inc()

    def record_reservations_expired(self, queue: str, count: int) -> None:
        """Record recovered reservations."""
        self.reservations_expired.labels(queue=queue).inc(count)

    def update_queue_depth(self, queue: str, depth: int) -> None:
        """Update ready-message depth for a queue."""
        self.queue_depth.labels(queue=queue).set(depth)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics output."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
