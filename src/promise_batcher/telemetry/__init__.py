"""
Telemetry module for promise-batcher.

Provides structured logging for batcher trace points.
"""

from promise_batcher.telemetry.logger import (
    BatcherLogger,
    JsonFormatter,
    LogLevel,
    TextFormatter,
    get_logger,
)

__all__ = [
    "BatcherLogger",
    "JsonFormatter",
    "LogLevel",
    "TextFormatter",
    "get_logger",
]
