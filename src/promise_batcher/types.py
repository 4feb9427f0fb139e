"""
Shared types for promise-batcher.

Defines the retry token, the result contract of batching functions and the
statistics snapshot model.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

R = TypeVar("R")


class RetryToken(Enum):
    """Marker type for requests that should be queued again."""

    RETRY = "BATCHER_RETRY_TOKEN"

    def __repr__(self) -> str:
        return "BATCHER_RETRY_TOKEN"


BATCHER_RETRY_TOKEN = RetryToken.RETRY
"""If returned in the output of a batching function, the corresponding request
is placed back at the head of the queue."""

BatchingResult = Union[R, Exception, RetryToken]

BatchingFunction = Callable[
    ...,
    Union[Sequence[BatchingResult[Any]], Awaitable[Sequence[BatchingResult[Any]]]],
]
DelayFunction = Callable[[], Optional[Awaitable[Any]]]


class BatcherStats(BaseModel):
    """Point-in-time statistics of a Batcher."""

    model_config = ConfigDict(frozen=True)

    queued: int = Field(default=0, description="Requests waiting in the queue")
    active_batches: int = Field(default=0, description="Batches currently executing")
    peak_active_batches: int = Field(
        default=0, description="Highest number of concurrently executing batches"
    )
    batches_dispatched: int = Field(
        default=0, description="Batches handed to the batching function"
    )
    requests_resolved: int = Field(default=0, description="Requests resolved with a value")
    requests_rejected: int = Field(default=0, description="Requests rejected with an error")
    requests_retried: int = Field(
        default=0, description="Requests placed back in the queue for retry"
    )
