"""
Type definitions for the durable queue.
"""

from durable_queue.types.codec import JsonCodec, PayloadCodec
from durable_queue.types.message import Message, QueueOptions, ReleaseOptions

__all__ = [
    "Message",
    "QueueOptions",
    "ReleaseOptions",
    "PayloadCodec",
    "JsonCodec",
]
