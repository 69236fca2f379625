"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Generator
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from durable_queue.config import get_settings
from durable_queue.observability.metrics import MetricsCollector
from durable_queue.queue import ExponentialBackoff, Queue

# Environment variables read by Settings that would leak into tests
_SETTINGS_ENV = (
    "STORAGE_ROOT",
    "DEFAULT_TIMEOUT_SECONDS",
    "RESERVATION_TTL_SECONDS",
    "SQLITE_JOURNAL_MODE",
    "TRACING_ENABLED",
    "REAPER_INTERVAL_SECONDS",
    "FAILED_RETENTION_SECONDS",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Start every test from default settings."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Directory for queue stores (not created up front)."""
    return tmp_path / "queues"


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def fast_wait() -> ExponentialBackoff:
    """Short polling intervals so timeouts in tests stay quick."""
    return ExponentialBackoff(initial=0.01, maximum=0.05, factor=2.0)


@pytest.fixture
def queue(
    storage_root: Path,
    metrics: MetricsCollector,
    fast_wait: ExponentialBackoff,
) -> Generator[Queue]:
    """An open queue, flushed after the test."""
    test_queue = Queue(
        "test-queue",
        storage_root,
        wait_strategy=fast_wait,
        metrics=metrics,
    )
    test_queue.open()

    yield test_queue

    test_queue.flush()


@pytest.fixture
def sample_payload() -> dict:
    """Create a sample message payload."""
    return {
        "job_type": "echo",
        "data": {"message": "Hello, World!"},
    }
