"""
Structured logging setup using structlog.

Library modules log through logging.getLogger(__name__) with extra={...};
the host process decides how records are rendered by calling
setup_logging(). Fields bound with bind_context() or queue_context() are
merged into every record emitted in the same context, including records
from modules that do not know about the binding (the repository, for
example, never learns which queue it is working on).
"""

import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace

from durable_queue.config import get_settings


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Add the current trace_id and span_id to a record, if a span is recording."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Route standard library logging through structlog's ProcessorFormatter.

    Args:
        level: Log level name. Defaults to settings.
        log_format: "json" or "console". Defaults to settings.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    log_format = log_format or settings.log_format

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    # Statement echo only at DEBUG
    if level != "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def bind_context(**fields: Any) -> None:
    """Bind fields to every record logged later in this context."""
    structlog.contextvars.bind_contextvars(**fields)


@contextmanager
def queue_context(queue: str, **fields: Any) -> Generator[None]:
    """
    Bind a queue name (and any extra fields) for the duration of a block.

    Previously bound values of the same keys are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(queue=queue, **fields):
        yield
