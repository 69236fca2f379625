"""
Database connection management.

Each queue owns one SQLite file under the storage root and one SQLAlchemy
engine on it. This module maps queue names to files, builds the engines,
creates the schema and translates driver errors into StorageUnavailable.
"""

import hashlib
import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import quote

import sqlalchemy
from sqlalchemy import Engine, event, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import URL, Connection
from sqlalchemy.exc import DBAPIError
from sqlalchemy.schema import CreateIndex, CreateTable

from durable_queue.config import get_settings
from durable_queue.constants import DATABASE_SUFFIX, SQLITE_SIDE_FILE_SUFFIXES
from durable_queue.db.models import META_QUEUE_NAME, Base, QueueMeta
from durable_queue.exceptions import ConfigurationError, StorageUnavailable
from durable_queue.observability.tracing import instrument_sqlalchemy

logger = logging.getLogger(__name__)

JOURNAL_MODES = frozenset({"delete", "truncate", "persist", "memory", "wal", "off"})


def database_path(storage_root: Path | str, name: str) -> Path:
    """
    Map a queue name to its database file.

    The file name is the hex SHA-256 digest of the UTF-8 encoded queue name,
    so the same name resolves to the same file across processes and
    restarts.

    Args:
        storage_root: Directory holding queue stores.
        name: The queue name.

    Returns:
        Path: The database file path.
    """
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()
    return Path(storage_root) / f"{digest}{DATABASE_SUFFIX}"


def create_queue_engine(path: Path) -> Engine:
    """
    Create the engine for an existing database file.

    The file is opened in read-write mode without create, so a store that
    was deleted underneath a live queue fails loudly instead of being
    silently recreated empty.

    Args:
        path: The database file, which must already exist.

    Returns:
        Engine: The SQLAlchemy engine instance.
    """
    settings = get_settings()

    journal_mode = settings.sqlite_journal_mode.lower()
    if journal_mode not in JOURNAL_MODES:
        raise ConfigurationError(f"Unsupported SQLite journal mode: {settings.sqlite_journal_mode}")

    url = URL.create(
        "sqlite",
        database=f"file:{quote(str(path.resolve()))}",
        query={"mode": "rw", "uri": "true"},
    )
    instrument_sqlalchemy()
    # Resolved at call time so the tracing wrapper around create_engine applies
    engine = sqlalchemy.create_engine(
        url,
        connect_args={
            "timeout": settings.sqlite_busy_timeout_seconds,
            "check_same_thread": False,
        },
        echo=settings.log_level == "DEBUG",
    )

    @event.listens_for(engine, "connect")
    def _set_journal_mode(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA journal_mode={journal_mode}")
        cursor.close()

    return engine


@contextmanager
def get_connection(engine: Engine) -> Generator[Connection]:
    """
    Context manager for a connection in a transaction.

    Commits on success, rolls back on error. Driver errors surface as
    StorageUnavailable.

    Yields:
        Connection: A connection with an open transaction.
    """
    try:
        with engine.begin() as connection:
            yield connection
    except DBAPIError as exc:
        raise StorageUnavailable(f"Queue storage failed: {exc.orig}") from exc


def init_schema(engine: Engine, name: str) -> None:
    """
    Create the tables if missing and claim the store for a queue name.

    Safe to run concurrently from several processes on the same file.

    Args:
        engine: The queue engine.
        name: The queue name that must own this store.

    Raises:
        ConfigurationError: If the store already belongs to another name.
    """
    with get_connection(engine) as connection:
        for table in Base.metadata.sorted_tables:
            connection.execute(CreateTable(table, if_not_exists=True))
            for index in table.indexes:
                connection.execute(CreateIndex(index, if_not_exists=True))

        connection.execute(
            insert(QueueMeta)
            .values(key=META_QUEUE_NAME, value=name)
            .on_conflict_do_nothing(index_elements=["key"])
        )
        owner = connection.execute(
            select(QueueMeta.value).where(QueueMeta.key == META_QUEUE_NAME)
        ).scalar_one()

    if owner != name:
        raise ConfigurationError(
            f"Queue store {engine.url.database} belongs to queue {owner!r}, not {name!r}"
        )


def remove_database_files(path: Path) -> None:
    """
    Delete a database file and its SQLite side files.

    Args:
        path: The database file path.
    """
    for candidate in (path, *(path.with_name(path.name + suffix) for suffix in SQLITE_SIDE_FILE_SUFFIXES)):
        try:
            candidate.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Could not remove queue storage {candidate}: {exc}") from exc
    logger.info("Removed queue storage", extra={"path": str(path)})
