"""
Unit tests for wait strategies.
"""

import threading
import time
from itertools import islice

import pytest

from durable_queue.queue import ExponentialBackoff, FixedInterval


class TestFixedInterval:
    """Tests for FixedInterval."""

    def test_intervals(self):
        """Test every delay is the configured interval."""
        strategy = FixedInterval(interval=1.0)

        assert list(islice(strategy.intervals(), 4)) == [1.0, 1.0, 1.0, 1.0]

    def test_rejects_non_positive_interval(self):
        """Test a zero interval is rejected."""
        with pytest.raises(ValueError):
            FixedInterval(interval=0)


class TestExponentialBackoff:
    """Tests for ExponentialBackoff."""

    def test_intervals_grow_to_maximum(self):
        """Test delays double until capped."""
        strategy = ExponentialBackoff(initial=0.1, maximum=0.5, factor=2.0)

        delays = list(islice(strategy.intervals(), 5))

        assert delays == pytest.approx([0.1, 0.2, 0.4, 0.5, 0.5])

    def test_each_iterator_starts_over(self):
        """Test a new poll starts from the initial delay."""
        strategy = ExponentialBackoff(initial=0.1, maximum=1.0, factor=3.0)

        first = strategy.intervals()
        next(first)
        next(first)

        assert next(strategy.intervals()) == pytest.approx(0.1)

    def test_defaults_from_settings(self):
        """Test unset parameters come from settings."""
        strategy = ExponentialBackoff()

        assert strategy.initial == 0.1
        assert strategy.maximum == 1.0
        assert strategy.factor == 2.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial": 0, "maximum": 1.0, "factor": 2.0},
            {"initial": 1.0, "maximum": 0.5, "factor": 2.0},
            {"initial": 0.1, "maximum": 1.0, "factor": 0.5},
        ],
    )
    def test_rejects_invalid_parameters(self, kwargs):
        """Test invalid backoff parameters are rejected."""
        with pytest.raises(ValueError):
            ExponentialBackoff(**kwargs)


class TestWaitNotification:
    """Tests for sleeping and early wake-up."""

    def test_sleep_zero_returns_immediately(self):
        """Test a non-positive sleep does not block."""
        strategy = FixedInterval(interval=5.0)

        started = time.monotonic()
        strategy.sleep(0)

        assert time.monotonic() - started < 0.1

    def test_sleep_runs_full_duration(self):
        """Test an un-notified sleep lasts about the requested time."""
        strategy = FixedInterval(interval=5.0)

        started = time.monotonic()
        strategy.sleep(0.2)

        assert time.monotonic() - started >= 0.15

    def test_notify_wakes_sleeper(self):
        """Test notify cuts a long sleep short."""
        strategy = FixedInterval(interval=10.0)
        woke = threading.Event()

        def sleeper():
            strategy.sleep(10.0)
            woke.set()

        thread = threading.Thread(target=sleeper)
        started = time.monotonic()
        thread.start()

        # The sleeper may not be waiting yet when the first notify lands
        while not woke.is_set() and time.monotonic() - started < 5.0:
            strategy.notify()
            woke.wait(timeout=0.05)

        thread.join(timeout=2.0)
        assert woke.is_set()
        assert time.monotonic() - started < 5.0
