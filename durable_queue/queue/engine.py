"""
The queue engine.

Producers submit payloads; consumers reserve them and later finish, release
or abort them. Reservation is a compare-and-swap on the row status, so any
number of consumers (threads or processes) can poll the same store without
an external lock manager.
"""

import logging
import threading
import time
from collections.abc import Callable, Generator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from sqlalchemy import Engine, Row

from durable_queue.config import get_settings
from durable_queue.constants import (
    DEFAULT_PEEK_LIMIT,
    OUTCOME_ABORTED,
    OUTCOME_FINISHED,
    OUTCOME_RELEASED,
    OUTCOME_TAKEN,
    SPAN_ABORT,
    SPAN_FINISH,
    SPAN_RELEASE,
    SPAN_RESERVE,
    SPAN_SUBMIT,
    SPAN_TAKE,
    MessageStatus,
)
from durable_queue.db import (
    MessageRepository,
    create_queue_engine,
    database_path,
    get_connection,
    init_schema,
    remove_database_files,
)
from durable_queue.exceptions import ClaimLost, ConfigurationError, StorageUnavailable
from durable_queue.observability.metrics import MetricsCollector, get_metrics
from durable_queue.observability.tracing import get_tracer
from durable_queue.queue.wait import ExponentialBackoff, WaitStrategy
from durable_queue.types import JsonCodec, Message, PayloadCodec, QueueOptions, ReleaseOptions

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in the queue table."""
    return datetime.now(UTC).replace(tzinfo=None)


def _parse_id(message_id: str | int) -> int | None:
    """Convert a public identifier to a row id, None if it cannot address a row."""
    try:
        return int(message_id)
    except (TypeError, ValueError):
        return None


class Queue:
    """
    A named, durable work queue backed by one SQLite file.

    Lifecycle: construct, open() (or use as a context manager), operate,
    close(). Construction validates configuration only; open() creates the
    storage directory, file and schema on first use.

    Message lifecycle:
    - submit: new row in READY
    - reserve: READY -> RESERVED (exactly one concurrent caller wins)
    - take: READY -> deleted
    - finish: RESERVED -> deleted
    - release: RESERVED -> READY, failure count + 1
    - abort: RESERVED -> FAILED (buried), failure count + 1
    - purge_failed: FAILED -> deleted
    """

    def __init__(
        self,
        name: str,
        storage_root: Path | str | None = None,
        *,
        default_timeout_seconds: int | None = None,
        reservation_ttl_seconds: float | None = None,
        wait_strategy: WaitStrategy | None = None,
        codec: PayloadCodec | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue.

        Args:
            name: Queue name; maps to the storage file.
            storage_root: Directory for queue stores. Defaults to settings.
            default_timeout_seconds: Timeout for reserve/take when none is given.
            reservation_ttl_seconds: Reservation lifetime, None for no expiry.
            wait_strategy: Sleep policy between polls. Defaults to exponential backoff.
            codec: Payload codec. Defaults to JSON.
            metrics: Metrics collector. Defaults to the process-wide one.

        Raises:
            ConfigurationError: If the name is empty, options are invalid or
                no storage root is configured.
        """
        settings = get_settings()

        try:
            options = QueueOptions(
                name=name,
                storage_root=storage_root if storage_root is not None else settings.storage_root,
                default_timeout_seconds=(
                    default_timeout_seconds
                    if default_timeout_seconds is not None
                    else settings.default_timeout_seconds
                ),
                reservation_ttl_seconds=(
                    reservation_ttl_seconds
                    if reservation_ttl_seconds is not None
                    else settings.reservation_ttl_seconds
                ),
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid options for queue {name!r}: {exc}") from exc

        if options.storage_root is None:
            raise ConfigurationError(f"No storage root configured for queue {name!r}")

        self.options = options
        self._path = database_path(options.storage_root, options.name)
        self._wait = wait_strategy or ExponentialBackoff()
        self._codec = codec or JsonCodec()
        self._metrics = metrics or get_metrics()
        self._engine: Engine | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_options(cls, options: QueueOptions | Mapping[str, Any], **kwargs: Any) -> "Queue":
        """
        Build a queue from a QueueOptions model or a plain mapping.

        Args:
            options: The queue options.
            **kwargs: Collaborators (wait_strategy, codec, metrics).
        """
        if not isinstance(options, QueueOptions):
            try:
                options = QueueOptions.model_validate(options)
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid queue options: {exc}") from exc
        return cls(
            options.name,
            options.storage_root,
            default_timeout_seconds=options.default_timeout_seconds,
            reservation_ttl_seconds=options.reservation_ttl_seconds,
            **kwargs,
        )

    @property
    def name(self) -> str:
        """Get queue name."""
        return self.options.name

    @property
    def path(self) -> Path:
        """Get the database file backing this queue."""
        return self._path

    @property
    def default_timeout(self) -> int:
        """Get the default reserve/take timeout in seconds."""
        return self.options.default_timeout_seconds

    @property
    def is_open(self) -> bool:
        """Check if the queue holds an open engine."""
        return self._engine is not None

    # Lifecycle

    def open(self) -> "Queue":
        """
        Open the backing store, creating it on first use.

        Idempotent. If schema setup fails the half-built engine is disposed
        before the error propagates.

        Returns:
            The queue itself.

        Raises:
            StorageUnavailable: If the directory or file cannot be created or
                the file is not a usable database.
            ConfigurationError: If the file belongs to a different queue name.
        """
        with self._lock:
            if self._engine is not None:
                return self

            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.touch(exist_ok=True)
            except OSError as exc:
                raise StorageUnavailable(f"Cannot create queue storage {self._path}: {exc}") from exc

            engine = create_queue_engine(self._path)
            try:
                init_schema(engine, self.name)
            except Exception:
                engine.dispose()
                raise

            self._engine = engine

        logger.info(
            "Queue opened",
            extra={"queue": self.name, "path": str(self._path)}
        )
        return self

    def close(self) -> None:
        """Release the backing store handle. The data stays on disk."""
        with self._lock:
            engine, self._engine = self._engine, None
        if engine is not None:
            engine.dispose()
            logger.info("Queue closed", extra={"queue": self.name})

    def __enter__(self) -> "Queue":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _repository(self) -> Generator[MessageRepository]:
        """Repository bound to a fresh transaction on this queue's store."""
        engine = self._engine
        if engine is None:
            raise StorageUnavailable(f"Queue {self.name!r} is not open")
        with get_connection(engine) as connection:
            yield MessageRepository(connection)

    # Producer side

    def submit(self, payload: Any) -> str | None:
        """
        Add a message to the queue.

        The message is visible to consumers immediately.

        Args:
            payload: Anything the codec can encode.

        Returns:
            The message identifier, or None if the insert did not take effect.
        """
        with get_tracer().start_as_current_span(SPAN_SUBMIT) as span:
            span.set_attribute("queue", self.name)

            data = self._codec.encode(payload)
            with self._repository() as repo:
                message_id = repo.insert_message(data)

            if message_id is None:
                logger.warning("Submit did not insert a message", extra={"queue": self.name})
                return None

            span.set_attribute("message_id", message_id)

        self._metrics.record_submitted(self.name)
        self._wait.notify()

        logger.info(
            "Submitted message",
            extra={"queue": self.name, "message_id": message_id}
        )
        return str(message_id)

    # Consumer side

    def reserve(self, timeout: float | None = None) -> Message | None:
        """
        Wait for the oldest ready message and reserve it.

        The message stays in the store, invisible to other consumers, until
        it is finished, released or aborted (or its reservation expires).

        Args:
            timeout: Seconds to wait. Defaults to the queue default; 0 polls once.

        Returns:
            The reserved message, or None if the timeout expired.
        """
        with get_tracer().start_as_current_span(SPAN_RESERVE) as span:
            span.set_attribute("queue", self.name)
            started = time.monotonic()

            message = self._poll(self._reserve_next, timeout)
            if message is None:
                return None

            span.set_attribute("message_id", message.identifier)

        self._metrics.record_reserved(self.name, time.monotonic() - started)
        logger.info(
            "Reserved message",
            extra={
                "queue": self.name,
                "message_id": message.identifier,
                "failures": message.failure_count,
            }
        )
        return message

    def take(self, timeout: float | None = None) -> Message | None:
        """
        Wait for the oldest ready message and remove it from the queue.

        Destructive dequeue: there is no acknowledgment step.

        Args:
            timeout: Seconds to wait. Defaults to the queue default; 0 polls once.

        Returns:
            The removed message, or None if the timeout expired.
        """
        with get_tracer().start_as_current_span(SPAN_TAKE) as span:
            span.set_attribute("queue", self.name)

            message = self._poll(self._take_next, timeout)
            if message is None:
                return None

            span.set_attribute("message_id", message.identifier)

        self._metrics.record_completed(self.name, OUTCOME_TAKEN)
        logger.info(
            "Took message",
            extra={"queue": self.name, "message_id": message.identifier}
        )
        return message

    def finish(self, message_id: str | int) -> bool:
        """
        Remove a message after successful processing.

        Args:
            message_id: The message identifier.

        Returns:
            True if a message was deleted; False if it was already gone.
        """
        row_id = _parse_id(message_id)
        if row_id is None:
            return False

        with get_tracer().start_as_current_span(SPAN_FINISH) as span:
            span.set_attribute("queue", self.name)
            span.set_attribute("message_id", row_id)

            with self._repository() as repo:
                deleted = repo.delete_message(row_id)

        if deleted:
            self._metrics.record_completed(self.name, OUTCOME_FINISHED)
            logger.info(
                "Finished message",
                extra={"queue": self.name, "message_id": row_id}
            )
        return deleted

    def release(
        self,
        message_id: str | int,
        options: ReleaseOptions | Mapping[str, Any] | None = None,
    ) -> None:
        """
        Put a reserved message back into the queue for redelivery.

        Increments the failure count. No-op if the message is not reserved
        (already finished, released, aborted or never reserved).

        Args:
            message_id: The message identifier.
            options: Release options; error text is recorded on the message.

        Raises:
            ConfigurationError: If options is a mapping that does not validate.
        """
        if options is None:
            options = ReleaseOptions()
        elif not isinstance(options, ReleaseOptions):
            try:
                options = ReleaseOptions.model_validate(options)
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid release options: {exc}") from exc

        row_id = _parse_id(message_id)
        released = False
        if row_id is not None:
            with get_tracer().start_as_current_span(SPAN_RELEASE) as span:
                span.set_attribute("queue", self.name)
                span.set_attribute("message_id", row_id)

                with self._repository() as repo:
                    released = repo.release_message(row_id, options.error)

        if not released:
            logger.warning(
                "Release ignored, message is not reserved",
                extra={"queue": self.name, "message_id": str(message_id)}
            )
            return

        self._metrics.record_completed(self.name, OUTCOME_RELEASED)
        self._wait.notify()
        logger.info(
            "Released message",
            extra={"queue": self.name, "message_id": row_id, "error": options.error}
        )

    def abort(self, message_id: str | int, error: str | None = None) -> None:
        """
        Bury a reserved message: it will not be delivered again.

        The row is kept with status FAILED for inspection (peek_failed,
        retry_failed) but is invisible to every consumer operation.
        No-op if the message is not reserved.

        Args:
            message_id: The message identifier.
            error: Optional error text to record.
        """
        row_id = _parse_id(message_id)
        buried = False
        if row_id is not None:
            with get_tracer().start_as_current_span(SPAN_ABORT) as span:
                span.set_attribute("queue", self.name)
                span.set_attribute("message_id", row_id)

                with self._repository() as repo:
                    buried = repo.bury_message(row_id, _utcnow(), error)

        if not buried:
            logger.warning(
                "Abort ignored, message is not reserved",
                extra={"queue": self.name, "message_id": str(message_id)}
            )
            return

        self._metrics.record_completed(self.name, OUTCOME_ABORTED)
        logger.info(
            "Aborted message",
            extra={"queue": self.name, "message_id": row_id, "error": error}
        )

    def extend_reservation(self, message_id: str | int, seconds: float | None = None) -> bool:
        """
        Push the deadline of a reserved message forward (heartbeat).

        Args:
            message_id: The message identifier.
            seconds: New lifetime from now. Defaults to the queue's TTL.

        Returns:
            True if the message is still reserved and was extended.

        Raises:
            ConfigurationError: If no lifetime is given and the queue has no TTL.
        """
        if seconds is None:
            seconds = self.options.reservation_ttl_seconds
        if seconds is None:
            raise ConfigurationError(f"Queue {self.name!r} has no reservation TTL")

        row_id = _parse_id(message_id)
        if row_id is None:
            return False

        with self._repository() as repo:
            extended = repo.extend_reservation(row_id, _utcnow() + timedelta(seconds=seconds))

        if extended:
            logger.debug(
                "Extended reservation",
                extra={"queue": self.name, "message_id": row_id}
            )
        else:
            logger.warning(
                "Extend ignored, message is not reserved",
                extra={"queue": self.name, "message_id": row_id}
            )
        return extended

    def recover_expired(self) -> int:
        """
        Return messages whose reservation expired to the queue.

        Each recovered message counts as a failure.

        Returns:
            Number of recovered messages.
        """
        with self._repository() as repo:
            count = repo.recover_expired(_utcnow())

        if count > 0:
            self._metrics.record_reservations_expired(self.name, count)
            self._wait.notify()
            logger.info(
                "Recovered expired reservations",
                extra={"queue": self.name, "count": count}
            )
        return count

    # Diagnostics

    def peek(self, limit: int = DEFAULT_PEEK_LIMIT) -> list[Message]:
        """
        List the oldest ready messages without changing them.

        Not claim-safe: a peeked message may be reserved by someone else
        right after.

        Args:
            limit: Maximum number of messages.

        Returns:
            Messages oldest first, possibly empty.
        """
        return self._list(MessageStatus.READY, limit)

    def peek_failed(self, limit: int = DEFAULT_PEEK_LIMIT) -> list[Message]:
        """
        List the oldest buried messages.

        Args:
            limit: Maximum number of messages.

        Returns:
            Messages oldest first, possibly empty.
        """
        return self._list(MessageStatus.FAILED, limit)

    def count(self) -> int:
        """
        Count ready messages.

        Approximate under concurrent mutation.

        Returns:
            Number of ready messages.
        """
        with self._repository() as repo:
            depth = repo.count_messages(MessageStatus.READY)

        self._metrics.update_queue_depth(self.name, depth)
        return depth

    def stats(self) -> dict[str, int]:
        """
        Get message counts by status.

        Returns:
            Dictionary of status -> count.
        """
        with self._repository() as repo:
            return repo.get_stats()

    def get_message(self, message_id: str | int) -> Message | None:
        """
        Look up a message by identifier, whatever its status.

        Args:
            message_id: The message identifier.

        Returns:
            The message or None if it no longer exists.
        """
        row_id = _parse_id(message_id)
        if row_id is None:
            return None

        with self._repository() as repo:
            row = repo.get_message(row_id)
        return self._to_message(row) if row is not None else None

    def retry_failed(self, message_id: str | int, reset_failures: bool = False) -> bool:
        """
        Move a buried message back to the queue.

        Args:
            message_id: The message identifier.
            reset_failures: Whether to reset the failure count.

        Returns:
            True if the message was requeued.
        """
        row_id = _parse_id(message_id)
        if row_id is None:
            return False

        with self._repository() as repo:
            retried = repo.retry_failed(row_id, reset_failures=reset_failures)

        if retried:
            self._wait.notify()
            logger.info(
                "Retried buried message",
                extra={"queue": self.name, "message_id": row_id}
            )
        return retried

    def purge_failed(self, older_than_seconds: float | None = None) -> int:
        """
        Delete buried messages for good.

        Args:
            older_than_seconds: Only delete messages buried at least this many
                seconds ago. None deletes every buried message.

        Returns:
            Number of deleted messages.
        """
        cutoff = None
        if older_than_seconds is not None:
            cutoff = _utcnow() - timedelta(seconds=older_than_seconds)

        with self._repository() as repo:
            purged = repo.purge_failed(cutoff)

        if purged > 0:
            logger.info(
                "Purged buried messages",
                extra={"queue": self.name, "count": purged}
            )
        return purged

    def flush(self) -> None:
        """
        Destroy this queue's storage: every message, every state, the schema.

        Danger, irreversible. Meant for tests and teardown, not for
        producers or consumers. The queue is left closed; opening it again
        starts from an empty store.
        """
        with self._lock:
            engine, self._engine = self._engine, None
            if engine is not None:
                engine.dispose()
            remove_database_files(self._path)

        logger.warning("Flushed queue", extra={"queue": self.name, "path": str(self._path)})

    # Internals

    def _poll(self, attempt: Callable[[], Message | None], timeout: float | None) -> Message | None:
        """
        Run attempt until it yields a message or the timeout expires.

        Each round makes one claim attempt, then checks the deadline, then
        sleeps for the next interval of the wait strategy (never past the
        deadline). A lost claim counts as an empty round.
        """
        if timeout is None:
            timeout = self.default_timeout
        deadline = time.monotonic() + max(timeout, 0)
        delays = self._wait.intervals()

        while True:
            try:
                message = attempt()
            except ClaimLost as exc:
                self._metrics.record_claim_conflict(self.name)
                logger.debug(
                    "Lost claim to another consumer",
                    extra={"queue": self.name, "message_id": exc.message_id}
                )
                message = None

            if message is not None:
                return message

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug(
                    "Timed out waiting for a message",
                    extra={"queue": self.name, "timeout": timeout}
                )
                return None

            self._wait.sleep(min(next(delays), remaining))

    def _reserve_next(self) -> Message | None:
        """One claim attempt on the oldest ready message."""
        with self._repository() as repo:
            candidates = repo.list_messages(MessageStatus.READY, limit=1)
            if not candidates:
                return None

            candidate = candidates[0]
            reserved_until = self._reservation_deadline()
            if not repo.claim_message(candidate.id, reserved_until):
                raise ClaimLost(candidate.id)

        return self._to_message(
            candidate,
            status=MessageStatus.RESERVED,
            reserved_until=reserved_until,
        )

    def _take_next(self) -> Message | None:
        """One destructive claim attempt on the oldest ready message."""
        with self._repository() as repo:
            candidates = repo.list_messages(MessageStatus.READY, limit=1)
            if not candidates:
                return None

            candidate = candidates[0]
            if not repo.take_message(candidate.id):
                raise ClaimLost(candidate.id)

        return self._to_message(candidate)

    def _list(self, status: MessageStatus, limit: int) -> list[Message]:
        if limit <= 0:
            return []
        with self._repository() as repo:
            rows = repo.list_messages(status, limit=limit)
        return [self._to_message(row) for row in rows]

    def _reservation_deadline(self) -> datetime | None:
        ttl = self.options.reservation_ttl_seconds
        if ttl is None:
            return None
        return _utcnow() + timedelta(seconds=ttl)

    def _to_message(self, row: Row, **overrides: Any) -> Message:
        fields = {
            "identifier": str(row.id),
            "payload": self._codec.decode(row.payload),
            "status": row.status,
            "failure_count": row.failures,
            "reserved_until": row.reserved_until,
            "last_error": row.last_error,
            "failed_at": row.failed_at,
        }
        fields.update(overrides)
        return Message(**fields)

    def __repr__(self) -> str:
        return f"Queue(name={self.name!r}, path={str(self._path)!r}, open={self.is_open})"
