"""请求批处理器：将独立提交的异步请求合并为批次执行。

promise-batcher: batching of individual asyncio requests.

Combines many fine-grained calls into fewer batched calls while every caller
still awaits, fails and retries independently.
"""
from __future__ import annotations

from promise_batcher.batcher import Batcher
from promise_batcher.config import BatcherConfig
from promise_batcher.errors import BatcherError, BatchOutputError, ConfigError
from promise_batcher.types import (
    BATCHER_RETRY_TOKEN,
    BatcherStats,
    BatchingFunction,
    BatchingResult,
    DelayFunction,
    RetryToken,
)

__version__ = "1.1.1"

__all__ = [
    "BATCHER_RETRY_TOKEN",
    # Batcher
    "Batcher",
    "BatcherConfig",
    # Errors
    "BatcherError",
    "BatcherStats",
    "BatchingFunction",
    "BatchingResult",
    "BatchOutputError",
    "ConfigError",
    "DelayFunction",
    "RetryToken",
    # Version
    "__version__",
]
