"""
SQLAlchemy database models.
Defines the queue table and the metadata table of a queue store.
"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from durable_queue.constants import MessageStatus

# Key under which a store records the name of the queue that owns it
META_QUEUE_NAME = "queue_name"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class QueueRow(Base):
    """
    A message in the queue.

    The row is the authoritative state of the message. Every transition is a
    single conditional statement keyed on (id, expected status), so the
    affected-row count tells the caller whether it won.

    Ids come from AUTOINCREMENT and are never reused, which makes them the
    FIFO ordering key.
    """

    __tablename__ = "queue"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # Codec-encoded payload, never inspected
    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    status: Mapped[MessageStatus] = mapped_column(
        Enum(
            MessageStatus,
            name="message_status",
            native_enum=False,
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=MessageStatus.READY,
    )

    failures: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    # Set while reserved when the queue has a reservation TTL
    reserved_until: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Set when the message is buried, cleared when it is retried
    failed_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    __table_args__ = (
        # Index for oldest-ready polling and status counts
        Index("ix_queue_status_id", "status", "id"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"QueueRow(id={self.id}, status={self.status}, failures={self.failures})"


class QueueMeta(Base):
    """Key/value metadata for a queue store."""

    __tablename__ = "queue_meta"

    key: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
