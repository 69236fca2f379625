"""
Queue exceptions.

Construction-time misconfiguration and storage failures are raised to the
caller. An empty queue is not an error: reserve/take return None on timeout.
"""


class QueueError(Exception):
    """Base class for all queue errors."""


class ConfigurationError(QueueError):
    """Raised when a queue is constructed or opened with invalid options."""


class StorageUnavailable(QueueError):
    """Raised when the backing store is missing, unreadable or corrupt."""


class ClaimLost(QueueError):
    """
    A conditional update affected zero rows.

    Another consumer transitioned the candidate first. Only raised and
    caught inside the poll loop.
    """

    def __init__(self, message_id: int):
        super().__init__(f"Claim on message {message_id} lost to another consumer")
        self.message_id = message_id
