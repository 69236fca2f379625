"""
Message and option models.
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from durable_queue.constants import MessageStatus


class Message(BaseModel):
    """
    Handle on a queued message.

    Returned by reserve, take and peek. The payload is whatever the codec
    decoded; the queue never inspects it.
    """

    model_config = {"frozen": True}

    identifier: str
    payload: Any = None
    status: MessageStatus = MessageStatus.READY
    failure_count: int = 0
    reserved_until: datetime | None = None
    last_error: str | None = None
    failed_at: datetime | None = None


class ReleaseOptions(BaseModel):
    """Options for putting a reserved message back into the queue."""

    error: str | None = None


class QueueOptions(BaseModel):
    """
    Per-queue configuration.

    Values left as None fall back to the process settings when the queue
    is constructed.
    """

    name: str
    storage_root: Path | None = None
    default_timeout_seconds: int | None = Field(default=None, ge=0)
    reservation_ttl_seconds: float | None = Field(default=None, gt=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure name is non-empty after whitespace stripping."""
        if not v.strip():
            raise ValueError("queue name must not be empty")
        return v
