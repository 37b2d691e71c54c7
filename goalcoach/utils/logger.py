"""
Structured logging utilities for production observability.
Every record is stamped with the conversation currently being processed.
"""

import logging
import json
from typing import Any
from contextvars import ContextVar

# Context variable for the conversation being processed (task-local)
conversation_id_ctx: ContextVar[str | None] = ContextVar("conversation_id", default=None)


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter that outputs structured logs with context.
    Formats logs as JSON for easy parsing by log aggregation tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record with structured context.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }

        conversation_id = conversation_id_ctx.get()
        if conversation_id:
            log_data["conversation_id"] = conversation_id

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Readable single-line formatter that still shows the event fields."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, "extra_fields", None)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


class StructuredLogger:
    """
    Wrapper around standard logger with structured logging capabilities.
    Messages are event names; context goes in keyword fields.
    """

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__)
        """
        self.logger = logging.getLogger(name)

    def _log(
        self, level: int, event: str, exc_info: bool = False, **extra_fields: Any
    ) -> None:
        extra = {"extra_fields": extra_fields}
        self.logger.log(level, event, extra=extra, exc_info=exc_info)

    def debug(self, event: str, **extra_fields: Any) -> None:
        """Log debug event with context."""
        self._log(logging.DEBUG, event, **extra_fields)

    def info(self, event: str, **extra_fields: Any) -> None:
        """Log info event with context."""
        self._log(logging.INFO, event, **extra_fields)

    def warning(
        self, event: str, exc_info: bool = False, **extra_fields: Any
    ) -> None:
        """Log warning event with context."""
        self._log(logging.WARNING, event, exc_info=exc_info, **extra_fields)

    def error(
        self, event: str, exc_info: bool = False, **extra_fields: Any
    ) -> None:
        """
        Log error event with context.

        Args:
            event: Event name
            exc_info: If True, include exception traceback
            **extra_fields: Additional context fields
        """
        self._log(logging.ERROR, event, exc_info=exc_info, **extra_fields)


def get_logger(name: str) -> StructuredLogger:
    """
    Get or create a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)


def set_conversation_id(conversation_id: str | None) -> None:
    """
    Set the conversation id for the current task context.

    Args:
        conversation_id: Conversation being processed
    """
    conversation_id_ctx.set(conversation_id)


def get_conversation_id() -> str | None:
    """Get the conversation id of the current task context."""
    return conversation_id_ctx.get()


def configure_logging(
    level: str = "INFO", use_structured: bool = True
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_structured: If True, use structured JSON logging
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)

    if use_structured:
        formatter = StructuredFormatter(
            fmt="%(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ConsoleFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Provider SDKs log every HTTP request at INFO
    for noisy in ("httpx", "openai", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
