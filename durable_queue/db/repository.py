"""
Message repository for queue storage operations.
Implements the atomic statements the queue engine is built on.
"""

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import Row, delete, func, insert, select, update
from sqlalchemy.engine import Connection

from durable_queue.constants import MessageStatus
from durable_queue.db.models import QueueRow

logger = logging.getLogger(__name__)

# Columns loaded whenever a message is handed back to a caller
_MESSAGE_COLUMNS = (
    QueueRow.id,
    QueueRow.payload,
    QueueRow.status,
    QueueRow.failures,
    QueueRow.reserved_until,
    QueueRow.last_error,
    QueueRow.failed_at,
)


class MessageRepository:
    """
    Repository for queue row operations.

    Every state transition is one conditional statement of the form
    "UPDATE/DELETE ... WHERE id = :id AND status = :expected"; the return
    value reports whether exactly that row was affected. Two concurrent
    transitions on the same row can never both report success.
    """

    def __init__(self, connection: Connection):
        """
        Initialize the repository with a database connection.

        Args:
            connection: A connection with an open transaction.
        """
        self._connection = connection

    def insert_message(self, payload: str) -> int | None:
        """
        Insert a new ready message.

        Args:
            payload: The encoded payload.

        Returns:
            The generated id, or None if no row was inserted.
        """
        result = self._connection.execute(
            insert(QueueRow).values(
                payload=payload,
                status=MessageStatus.READY,
                failures=0,
            )
        )
        primary_key = result.inserted_primary_key
        if not primary_key or primary_key[0] is None:
            return None
        return int(primary_key[0])

    def get_message(self, message_id: int) -> Row | None:
        """
        Get a message row by id, whatever its status.

        Args:
            message_id: The message id.

        Returns:
            The row or None if not found.
        """
        stmt = select(*_MESSAGE_COLUMNS).where(QueueRow.id == message_id)
        return self._connection.execute(stmt).one_or_none()

    def list_messages(
        self,
        status: MessageStatus = MessageStatus.READY,
        limit: int = 1,
    ) -> Sequence[Row]:
        """
        List the oldest messages in a status, ordered by id.

        This is a plain read: the rows may change state right after it.

        Args:
            status: Status filter.
            limit: Maximum number of rows to return.

        Returns:
            Rows ordered oldest first.
        """
        stmt = (
            select(*_MESSAGE_COLUMNS)
            .where(QueueRow.status == status)
            .order_by(QueueRow.id.asc())
            .limit(limit)
        )
        return self._connection.execute(stmt).all()

    def count_messages(self, status: MessageStatus = MessageStatus.READY) -> int:
        """
        Count messages in a status.

        Args:
            status: Status filter.

        Returns:
            Number of matching rows.
        """
        stmt = select(func.count()).select_from(QueueRow).where(QueueRow.status == status)
        return self._connection.execute(stmt).scalar() or 0

    def get_stats(self) -> dict[str, int]:
        """
        Get message counts by status.

        Returns:
            Dictionary of status -> count, including zero counts.
        """
        stmt = select(QueueRow.status, func.count()).group_by(QueueRow.status)
        counts = {status.value: 0 for status in MessageStatus}
        for status, count in self._connection.execute(stmt).all():
            counts[MessageStatus(status).value] = count
        return counts

    def claim_message(
        self,
        message_id: int,
        reserved_until: datetime | None = None,
    ) -> bool:
        """
        Transition a message from READY to RESERVED.

        The compare-and-swap at the heart of the queue: only one of any
        number of concurrent callers sees True for a given id.

        Args:
            message_id: The candidate id.
            reserved_until: Reservation deadline, None for no expiry.

        Returns:
            True if this call reserved the message.
        """
        stmt = (
            update(QueueRow)
            .where(
                QueueRow.id == message_id,
                QueueRow.status == MessageStatus.READY,
            )
            .values(
                status=MessageStatus.RESERVED,
                reserved_until=reserved_until,
            )
        )
        return self._connection.execute(stmt).rowcount == 1

    def take_message(self, message_id: int) -> bool:
        """
        Delete a message that is still READY.

        Args:
            message_id: The candidate id.

        Returns:
            True if this call removed the message.
        """
        stmt = delete(QueueRow).where(
            QueueRow.id == message_id,
            QueueRow.status == MessageStatus.READY,
        )
        return self._connection.execute(stmt).rowcount == 1

    def delete_message(self, message_id: int) -> bool:
        """
        Delete a live (ready or reserved) message.

        Buried messages are not addressable this way.

        Args:
            message_id: The message id.

        Returns:
            True if a row was deleted.
        """
        stmt = delete(QueueRow).where(
            QueueRow.id == message_id,
            QueueRow.status.in_([MessageStatus.READY, MessageStatus.RESERVED]),
        )
        return self._connection.execute(stmt).rowcount == 1

    def release_message(self, message_id: int, error: str | None = None) -> bool:
        """
        Transition a message from RESERVED back to READY.

        Increments the failure counter and keeps the payload.

        Args:
            message_id: The message id.
            error: Optional error text to record.

        Returns:
            True if the message was released.
        """
        values = {
            "status": MessageStatus.READY,
            "failures": QueueRow.failures + 1,
            "reserved_until": None,
        }
        if error is not None:
            values["last_error"] = error

        stmt = (
            update(QueueRow)
            .where(
                QueueRow.id == message_id,
                QueueRow.status == MessageStatus.RESERVED,
            )
            .values(**values)
        )
        return self._connection.execute(stmt).rowcount == 1

    def bury_message(
        self,
        message_id: int,
        failed_at: datetime,
        error: str | None = None,
    ) -> bool:
        """
        Transition a message from RESERVED to FAILED.

        Args:
            message_id: The message id.
            failed_at: When the message was buried (naive UTC).
            error: Optional error text to record.

        Returns:
            True if the message was buried.
        """
        values = {
            "status": MessageStatus.FAILED,
            "failures": QueueRow.failures + 1,
            "reserved_until": None,
            "failed_at": failed_at,
        }
        if error is not None:
            values["last_error"] = error

        stmt = (
            update(QueueRow)
            .where(
                QueueRow.id == message_id,
                QueueRow.status == MessageStatus.RESERVED,
            )
            .values(**values)
        )
        return self._connection.execute(stmt).rowcount == 1

    def extend_reservation(self, message_id: int, reserved_until: datetime) -> bool:
        """
        Move the deadline of a reserved message (heartbeat).

        Args:
            message_id: The message id.
            reserved_until: The new deadline.

        Returns:
            True if the reservation was extended.
        """
        stmt = (
            update(QueueRow)
            .where(
                QueueRow.id == message_id,
                QueueRow.status == MessageStatus.RESERVED,
            )
            .values(reserved_until=reserved_until)
        )
        return self._connection.execute(stmt).rowcount == 1

    def recover_expired(self, now: datetime) -> int:
        """
        Return reservations whose deadline passed to READY.

        Each recovered message counts as a failure.

        Args:
            now: The current time (naive UTC).

        Returns:
            Number of recovered messages.
        """
        stmt = (
            update(QueueRow)
            .where(
                QueueRow.status == MessageStatus.RESERVED,
                QueueRow.reserved_until.is_not(None),
                QueueRow.reserved_until < now,
            )
            .values(
                status=MessageStatus.READY,
                failures=QueueRow.failures + 1,
                reserved_until=None,
            )
        )
        count = self._connection.execute(stmt).rowcount

        if count > 0:
            logger.info(f"Recovered {count} messages with expired reservations")

        return count

    def retry_failed(self, message_id: int, reset_failures: bool = False) -> bool:
        """
        Transition a buried message back to READY.

        Args:
            message_id: The message id.
            reset_failures: Whether to reset the failure counter.

        Returns:
            True if the message was requeued.
        """
        values = {
            "status": MessageStatus.READY,
            "last_error": None,
            "failed_at": None,
        }
        if reset_failures:
            values["failures"] = 0

        stmt = (
            update(QueueRow)
            .where(
                QueueRow.id == message_id,
                QueueRow.status == MessageStatus.FAILED,
            )
            .values(**values)
        )
        return self._connection.execute(stmt).rowcount == 1

    def purge_failed(self, older_than: datetime | None = None) -> int:
        """
        Delete buried messages.

        Args:
            older_than: Only delete messages buried before this time
                (naive UTC). None deletes every buried message.

        Returns:
            Number of deleted messages.
        """
        stmt = delete(QueueRow).where(QueueRow.status == MessageStatus.FAILED)
        if older_than is not None:
            stmt = stmt.where(QueueRow.failed_at < older_than)

        count = self._connection.execute(stmt).rowcount

        if count > 0:
            logger.info(f"Purged {count} buried messages")

        return count
