"""
Reservation reaper module.
Returns messages with expired reservations to their queues.
"""

from durable_queue.reaper.main import Reaper

__all__ = ["Reaper"]
