"""
Queue engine.
Contains the Queue state machine and the wait strategies used while polling.
"""

from durable_queue.queue.engine import Queue
from durable_queue.queue.wait import ExponentialBackoff, FixedInterval, WaitStrategy

__all__ = [
    "Queue",
    "WaitStrategy",
    "FixedInterval",
    "ExponentialBackoff",
]
