"""
Database module.
Contains the per-queue SQLite engine management, table models, and the
repository of atomic statements the queue engine is built on.
"""

from durable_queue.db.connection import (
    create_queue_engine,
    database_path,
    get_connection,
    init_schema,
    remove_database_files,
)
from durable_queue.db.models import Base, QueueMeta, QueueRow
from durable_queue.db.repository import MessageRepository

__all__ = [
    "create_queue_engine",
    "database_path",
    "get_connection",
    "init_schema",
    "remove_database_files",
    "MessageRepository",
    "QueueRow",
    "QueueMeta",
    "Base",
]
