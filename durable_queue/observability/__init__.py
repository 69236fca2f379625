"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from durable_queue.observability.logging import (
    bind_context,
    queue_context,
    setup_logging,
)
from durable_queue.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from durable_queue.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing

__all__ = [
    "setup_logging",
    "bind_context",
    "queue_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
    "instrument_sqlalchemy",
]
