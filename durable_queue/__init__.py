"""
Durable Work Queue

A single-process, file-backed work queue with at-most-one-active-reservation
semantics, atomic claims via conditional updates, and bounded polling.
"""

from durable_queue.constants import MessageStatus
from durable_queue.exceptions import (
    ConfigurationError,
    QueueError,
    StorageUnavailable,
)
from durable_queue.queue import (
    ExponentialBackoff,
    FixedInterval,
    Queue,
    WaitStrategy,
)
from durable_queue.types import Message, QueueOptions, ReleaseOptions

__version__ = "1.0.0"

__all__ = [
    "Queue",
    "QueueOptions",
    "Message",
    "MessageStatus",
    "ReleaseOptions",
    "WaitStrategy",
    "FixedInterval",
    "ExponentialBackoff",
    "QueueError",
    "ConfigurationError",
    "StorageUnavailable",
    "__version__",
]
