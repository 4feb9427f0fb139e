"""错误体系：批处理器的分层错误类型。

Error hierarchy for promise-batcher.

Provides a layered error hierarchy:
- BatcherError: Base class for all library errors
- ConfigError: Invalid batcher configuration
- BatchOutputError: Batching function returned a malformed result
"""

from __future__ import annotations

from typing import Any


class BatcherError(Exception):
    """Base class for all promise-batcher errors.

    All errors raised by this library inherit from this class, making it easy
    to catch all library errors with a single except clause.

    Attributes:
        message: Human-readable error message
        details: Additional structured details about the error
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigError(BatcherError, ValueError):
    """Invalid batcher configuration.

    Raised when:
    - queuing_thresholds is empty or holds a value below 1
    - max_batch_size is below 1
    - queuing_delay_ms is negative
    - batching_function / delay_function is not callable
    - a configuration file cannot be loaded
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
    ) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
            details["value"] = value
        super().__init__(message, details)
        self.field = field
        self.value = value


class BatchOutputError(BatcherError):
    """The batching function returned a result that cannot be distributed.

    Every request of the affected batch is rejected with this error.
    """

    def __init__(
        self,
        message: str,
        *,
        input_length: int | None = None,
        output_length: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if input_length is not None:
            details["input_length"] = input_length
        if output_length is not None:
            details["output_length"] = output_length
        super().__init__(message, details)
        self.input_length = input_length
        self.output_length = output_length
