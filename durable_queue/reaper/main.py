"""
Reservation reaper for recovering expired reservations.

The reaper runs periodically to find reserved messages whose deadline has
passed and returns them to their queue. This handles consumers that crashed
or hung while holding a reservation. Only queues configured with a
reservation TTL ever have expired reservations.
"""

import logging
import signal
import threading
from collections.abc import Sequence

from durable_queue.config import get_settings
from durable_queue.observability.logging import bind_context, queue_context, setup_logging
from durable_queue.queue import Queue

logger = logging.getLogger(__name__)


class Reaper:
    """
    Reservation reaper.

    Runs periodically to:
    1. Find messages in RESERVED status with an expired reserved_until
    2. Return them to READY, counting a failure
    3. Purge buried messages past their retention, when one is configured
    4. Record metrics for monitoring (through the queue)
    """

    def __init__(
        self,
        queues: Sequence[Queue],
        interval_seconds: float | None = None,
        failed_retention_seconds: float | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            queues: Open queues to watch.
            interval_seconds: Seconds between reaper runs.
            failed_retention_seconds: Purge buried messages older than this.
                Defaults to settings; None keeps buried messages.
        """
        settings = get_settings()
        self.queues = list(queues)
        self.interval = (
            interval_seconds if interval_seconds is not None else settings.reaper_interval_seconds
        )
        self.failed_retention = (
            failed_retention_seconds
            if failed_retention_seconds is not None
            else settings.failed_retention_seconds
        )
        self._stopped = threading.Event()

    def start(self) -> None:
        """Run the reaper loop until stop() is called."""
        logger.info(
            f"Reaper starting with interval {self.interval}s",
            extra={"queues": [queue.name for queue in self.queues]}
        )
        self._stopped.clear()

        while not self._stopped.is_set():
            try:
                recovered = self.run_once()

                if recovered > 0:
                    logger.info(f"Recovered {recovered} expired reservations")

            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

            self._stopped.wait(self.interval)

        logger.info("Reaper stopped")

    def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._stopped.set()

    def run_once(self) -> int:
        """
        Run the reaper once over every queue (for testing or cron-style execution).

        Returns:
            Number of messages recovered.
        """
        recovered = 0
        for queue in self.queues:
            with queue_context(queue.name):
                recovered += queue.recover_expired()
                if self.failed_retention is not None:
                    queue.purge_failed(older_than_seconds=self.failed_retention)
        return recovered


def run() -> None:
    """Run the reaper over the queues named in settings."""
    setup_logging()
    bind_context(component="reaper")
    settings = get_settings()

    if not settings.reaper_queue_names:
        logger.error("No queues configured for the reaper (REAPER_QUEUE_NAMES)")
        return

    queues = [Queue(name) for name in settings.reaper_queue_names]
    reaper = Reaper(queues)

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, lambda signum, frame: reaper.stop())

    try:
        for queue in queues:
            queue.open()
        reaper.start()
    finally:
        for queue in queues:
            queue.close()


if __name__ == "__main__":
    run()
