"""
Structured logging for promise-batcher.

Trace points carry keyword fields (batch size, retry count, ...) which are
rendered as JSON or as key=value pairs.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from enum import Enum
from typing import Any, ClassVar


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_logging_level(self) -> int:
        """Convert to standard logging level."""
        return getattr(logging, self.value)


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def __init__(self, include_timestamp: bool = True) -> None:
        """Initialize formatter.

        Args:
            include_timestamp: Whether to include timestamp
        """
        super().__init__()
        self._include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self._include_timestamp:
            log_data["timestamp"] = time.strftime(
                "%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)
            ) + f".{int(record.msecs):03d}Z"

        log_data.update(_extra_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as text, followed by its fields."""
        result = super().format(record)
        if fields := _extra_fields(record):
            result = f"{result} | " + " ".join(f"{k}={v}" for k, v in fields.items())
        return result


class BatcherLogger:
    """Logger for promise-batcher with structured logging support.

    Example:
        >>> logger = BatcherLogger.get_logger("promise_batcher.batcher")
        >>> logger.debug("Running batch", size=3)
        >>> scoped = logger.bind(batcher="users")
        >>> scoped.debug("Retry requested", count=1)
    """

    _loggers: ClassVar[dict[str, logging.Logger]] = {}
    _level: ClassVar[LogLevel] = LogLevel.INFO
    _handler: ClassVar[logging.Handler | None] = None

    @classmethod
    def configure(
        cls,
        level: LogLevel = LogLevel.INFO,
        format: str = "text",
        stream: Any = None,
    ) -> None:
        """Configure global logging settings.

        Args:
            level: Log level
            format: Output format ('json' or 'text')
            stream: Output stream (default: stderr)
        """
        cls._level = level

        formatter: logging.Formatter = (
            JsonFormatter() if format == "json" else TextFormatter()
        )
        cls._handler = logging.StreamHandler(stream or sys.stderr)
        cls._handler.setFormatter(formatter)
        cls._handler.setLevel(level.to_logging_level())

        for logger in cls._loggers.values():
            logger.handlers.clear()
            logger.addHandler(cls._handler)
            logger.setLevel(level.to_logging_level())

    @classmethod
    def get_logger(cls, name: str) -> BatcherLogger:
        """Get or create a logger.

        Args:
            name: Logger name

        Returns:
            Logger instance
        """
        if name not in cls._loggers:
            logger = logging.getLogger(name)
            logger.setLevel(cls._level.to_logging_level())

            if cls._handler:
                logger.handlers.clear()
                logger.addHandler(cls._handler)
            elif not logger.handlers:
                handler = logging.StreamHandler(sys.stderr)
                handler.setFormatter(TextFormatter())
                logger.addHandler(handler)

            logger.propagate = False
            cls._loggers[name] = logger

        return cls(cls._loggers[name])

    def __init__(
        self, logger: logging.Logger, fields: dict[str, Any] | None = None
    ) -> None:
        """Initialize with underlying logger and bound fields."""
        self._logger = logger
        self._fields = fields or {}

    def bind(self, **kwargs: Any) -> BatcherLogger:
        """Create a logger that adds the given fields to every record."""
        return BatcherLogger(self._logger, {**self._fields, **kwargs})

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Check whether records at this level would be emitted."""
        return self._logger.isEnabledFor(level.to_logging_level())

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log debug message."""
        fields = {**self._fields, **kwargs}
        extra = {"extra_fields": fields} if fields else {}
        self._logger.debug(msg, extra=extra)


def get_logger(name: str) -> BatcherLogger:
    """Get a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return BatcherLogger.get_logger(name)
