"""Logging configuration for veily-guard.

The library only emits records; applications opt in to structured JSON
output with setup_logging(). Every record carries the request_id of the
transport call it belongs to.
"""

import logging
import os
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

from pythonjsonlogger import jsonlogger


PACKAGE_LOGGER = "veily_guard"
SERVICE_NAME = "veily-guard"

# Chatty at INFO/DEBUG about every connection; kept at WARNING
_QUIET_LOGGERS = ("httpx", "httpcore", "hpack")

# Request ID of the transport call in progress, empty outside one
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestContextFilter(logging.Filter):
    """Filter that adds request_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add request_id from context to log record."""
        record.request_id = get_request_id() or "-"
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter emitting level, timestamp, service and request_id."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")
        if "asctime" in log_record:
            log_record["timestamp"] = log_record.pop("asctime")

        log_record["service"] = SERVICE_NAME

        if hasattr(record, "request_id"):
            log_record["request_id"] = record.request_id


def _build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return CustomJsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    return logging.Formatter(
        fmt="%(asctime)s %(levelname)-7s %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Send veily_guard records to stdout, as JSON or plain text.

    A library should not configure the root logger, so only the
    ``veily_guard`` logger gets a handler, and it stops propagating.
    Calling this again replaces the handler.

    Args:
        level: Log level name. Defaults to VEILY_GUARD_LOG_LEVEL, then INFO.
        json_format: JSON output. Defaults to VEILY_GUARD_LOG_FORMAT
            ("json" or "text"), then JSON.
    """
    if level is None:
        level = os.getenv("VEILY_GUARD_LOG_LEVEL", "INFO")
    level = level.upper()
    if json_format is None:
        json_format = os.getenv("VEILY_GUARD_LOG_FORMAT", "json").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(_build_formatter(json_format))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    package_logger.propagate = False
    package_logger.handlers[:] = [handler]

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)


def new_request_id() -> str:
    """Generate a request ID (32 hex characters). Nothing is bound."""
    return uuid.uuid4().hex


def get_request_id() -> str:
    """Return the request ID bound to the current context, or an empty string."""
    return request_id_var.get()


@contextmanager
def request_scope(request_id: Optional[str] = None) -> Iterator[str]:
    """Bind a request ID for the duration of a block.

    The previously bound ID (if any) is restored on exit, so log records
    emitted by the caller after a transport call never carry its ID.

    Args:
        request_id: ID to bind. A new one is generated when omitted.

    Yields:
        The bound request ID.

    Example:
        >>> with request_scope() as request_id:
        ...     logger.info("sending")  # record.request_id == request_id
    """
    request_id = request_id or new_request_id()
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)
