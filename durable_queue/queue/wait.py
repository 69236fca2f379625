"""
Wait strategies for polling an empty queue.

A strategy yields the delay before each successive poll of one reserve call
and performs the sleep. Sleeping happens on a condition variable, so a
producer in the same process can cut a wait short with notify(); waiters in
other processes still rely on the next poll.
"""

import threading
from collections.abc import Iterator

from durable_queue.config import get_settings


class WaitStrategy:
    """Base wait strategy: interruptible sleeps between polls."""

    def __init__(self) -> None:
        self._condition = threading.Condition()

    def intervals(self) -> Iterator[float]:
        """
        Yield the delay before each poll after the first.

        A fresh iterator is created for every reserve/take call.
        """
        raise NotImplementedError

    def sleep(self, seconds: float) -> None:
        """Block for up to seconds, returning early when notified."""
        if seconds <= 0:
            return
        with self._condition:
            self._condition.wait(seconds)

    def notify(self) -> None:
        """Wake every thread currently sleeping in this strategy."""
        with self._condition:
            self._condition.notify_all()


class FixedInterval(WaitStrategy):
    """Poll at a fixed interval."""

    def __init__(self, interval: float = 1.0) -> None:
        super().__init__()
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval

    def intervals(self) -> Iterator[float]:
        while True:
            yield self.interval

    def __repr__(self) -> str:
        return f"FixedInterval(interval={self.interval})"


class ExponentialBackoff(WaitStrategy):
    """
    Poll with a short initial interval that grows by factor up to maximum.

    Keeps latency low when messages arrive quickly and store load low when
    the queue stays empty.
    """

    def __init__(
        self,
        initial: float | None = None,
        maximum: float | None = None,
        factor: float | None = None,
    ) -> None:
        """
        Initialize the backoff.

        Args:
            initial: First delay in seconds.
            maximum: Upper bound for any delay.
            factor: Growth factor applied after each empty poll.
        """
        super().__init__()
        settings = get_settings()

        self.initial = initial if initial is not None else settings.poll_initial_interval_seconds
        self.maximum = maximum if maximum is not None else settings.poll_max_interval_seconds
        self.factor = factor if factor is not None else settings.poll_backoff_factor

        if self.initial <= 0 or self.maximum <= 0:
            raise ValueError("initial and maximum must be positive")
        if self.maximum < self.initial:
            raise ValueError("maximum must not be smaller than initial")
        if self.factor < 1:
            raise ValueError("factor must be at least 1")

    def intervals(self) -> Iterator[float]:
        delay = self.initial
        while True:
            yield delay
            delay = min(delay * self.factor, self.maximum)

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoff(initial={self.initial}, "
            f"maximum={self.maximum}, factor={self.factor})"
        )
