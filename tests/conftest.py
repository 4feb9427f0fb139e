"""Root pytest fixtures for promise-batcher tests."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest

from promise_batcher.telemetry import BatcherLogger, LogLevel

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def log_stream() -> Iterator[io.StringIO]:
    """Capture DEBUG logs of all batcher loggers as JSON lines."""
    stream = io.StringIO()
    BatcherLogger.configure(level=LogLevel.DEBUG, format="json", stream=stream)
    yield stream
    BatcherLogger.configure()
