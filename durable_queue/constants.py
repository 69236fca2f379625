"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class MessageStatus(StrEnum):
    """
    Message lifecycle states.

    State transitions:
    - (submit) -> READY
    - READY -> RESERVED (claim won)
    - READY -> deleted (take)
    - RESERVED -> deleted (finish)
    - RESERVED -> READY (release, reservation expired)
    - RESERVED -> FAILED (abort)
    - FAILED -> READY (retry_failed)
    - FAILED -> deleted (purge_failed)
    """

    READY = "ready"
    RESERVED = "reserved"
    FAILED = "failed"


# Default values
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_PEEK_LIMIT = 1
DATABASE_SUFFIX = ".db"
SQLITE_SIDE_FILE_SUFFIXES = ("-wal", "-shm", "-journal")

# Completion outcomes (metric label values)
OUTCOME_FINISHED = "finished"
OUTCOME_TAKEN = "taken"
OUTCOME_RELEASED = "released"
OUTCOME_ABORTED = "aborted"

# Metrics names
METRIC_QUEUE_DEPTH = "queue_depth"
METRIC_MESSAGES_SUBMITTED = "queue_messages_submitted_total"
METRIC_MESSAGES_RESERVED = "queue_messages_reserved_total"
METRIC_MESSAGES_COMPLETED = "queue_messages_completed_total"
METRIC_CLAIM_CONFLICTS = "queue_claim_conflicts_total"
METRIC_RESERVATIONS_EXPIRED = "queue_reservations_expired_total"
METRIC_RESERVE_WAIT = "queue_reserve_wait_seconds"

# Trace span names
SPAN_SUBMIT = "queue.submit"
SPAN_RESERVE = "queue.reserve"
SPAN_TAKE = "queue.take"
SPAN_FINISH = "queue.finish"
SPAN_RELEASE = "queue.release"
SPAN_ABORT = "queue.abort"
