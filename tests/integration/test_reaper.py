"""
Integration tests for the reservation reaper.
"""

import threading
import time
from pathlib import Path

import pytest

from durable_queue.constants import MessageStatus
from durable_queue.observability.metrics import MetricsCollector
from durable_queue.queue import Queue
from durable_queue.reaper import Reaper


@pytest.fixture
def ttl_queues(storage_root: Path, metrics: MetricsCollector, fast_wait):
    """Two open queues with a short reservation TTL."""
    queues = [
        Queue(
            name,
            storage_root,
            reservation_ttl_seconds=0.1,
            wait_strategy=fast_wait,
            metrics=metrics,
        ).open()
        for name in ("emails", "invoices")
    ]
    yield queues
    for queue in queues:
        queue.flush()


class TestReaper:
    """Tests for Reaper."""

    def test_run_once_recovers_all_queues(self, ttl_queues: list[Queue]):
        """Test one pass recovers expired reservations in every queue."""
        ids = []
        for queue in ttl_queues:
            ids.append(queue.submit("work"))
            queue.reserve(timeout=0)

        time.sleep(0.2)
        reaper = Reaper(ttl_queues, interval_seconds=1)

        assert reaper.run_once() == 2
        assert reaper.run_once() == 0

        for queue, message_id in zip(ttl_queues, ids):
            message = queue.get_message(message_id)
            assert message.status == MessageStatus.READY
            assert message.failure_count == 1

    def test_run_once_leaves_live_reservations(self, ttl_queues: list[Queue]):
        """Test reservations within their deadline are not touched."""
        queue = ttl_queues[0]
        message_id = queue.submit("work")
        queue.reserve(timeout=0)
        queue.extend_reservation(message_id, seconds=60)

        assert Reaper(ttl_queues).run_once() == 0
        assert queue.get_message(message_id).status == MessageStatus.RESERVED

    def test_records_expired_metric(self, ttl_queues: list[Queue], metrics: MetricsCollector):
        """Test recovered reservations are counted."""
        queue = ttl_queues[1]
        queue.submit("work")
        queue.reserve(timeout=0)
        time.sleep(0.2)

        Reaper(ttl_queues).run_once()

        assert metrics.registry.get_sample_value(
            "queue_reservations_expired_total", {"queue": "invoices"}
        ) == 1.0

    def test_start_and_stop(self, ttl_queues: list[Queue]):
        """Test the loop recovers in the background and stops on request."""
        queue = ttl_queues[0]
        message_id = queue.submit("work")
        queue.reserve(timeout=0)

        reaper = Reaper(ttl_queues, interval_seconds=0.05)
        thread = threading.Thread(target=reaper.start)
        thread.start()
        try:
            redelivered = queue.reserve(timeout=2)
        finally:
            reaper.stop()
            thread.join(timeout=5)

        assert not thread.is_alive()
        assert redelivered.identifier == message_id
        assert redelivered.failure_count == 1

    def test_loop_survives_errors(self, ttl_queues: list[Queue]):
        """Test a failing queue does not kill the loop."""
        broken = ttl_queues[1]
        broken.close()

        reaper = Reaper(ttl_queues, interval_seconds=0.05)
        thread = threading.Thread(target=reaper.start)
        thread.start()
        time.sleep(0.2)
        reaper.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()

    def test_explicit_zero_interval(self, ttl_queues: list[Queue]):
        """Test an interval of 0 is kept instead of falling back to settings."""
        assert Reaper(ttl_queues, interval_seconds=0).interval == 0
        assert Reaper(ttl_queues).interval == 10

    def test_purges_buried_past_retention(self, ttl_queues: list[Queue]):
        """Test buried messages are purged once older than the retention."""
        queue = ttl_queues[0]
        message_id = queue.submit("poison")
        queue.reserve(timeout=0)
        queue.abort(message_id)

        Reaper(ttl_queues, failed_retention_seconds=3600).run_once()
        assert queue.get_message(message_id).status == MessageStatus.FAILED

        time.sleep(0.1)
        Reaper(ttl_queues, failed_retention_seconds=0.05).run_once()
        assert queue.get_message(message_id) is None

    def test_keeps_buried_without_retention(self, ttl_queues: list[Queue]):
        """Test buried messages stay when no retention is configured."""
        queue = ttl_queues[0]
        message_id = queue.submit("poison")
        queue.reserve(timeout=0)
        queue.abort(message_id)

        Reaper(ttl_queues).run_once()

        assert queue.peek_failed()[0].identifier == message_id
