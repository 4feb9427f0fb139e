"""
Integration tests for concurrent requests.

Tests batching behavior under concurrent load against a simulated data store.
"""

import asyncio
import random

import pytest

from promise_batcher import BATCHER_RETRY_TOKEN, Batcher, BatcherConfig


class FakeStore:
    """Key/value store counting round trips and failing on busy keys once."""

    def __init__(self, rows: dict[int, str], busy: set[int] | None = None) -> None:
        self.rows = rows
        self.busy = set(busy or ())
        self.round_trips = 0
        self.max_concurrent = 0
        self._concurrent = 0

    async def fetch_many(self, keys: list[int]) -> list:
        self.round_trips += 1
        self._concurrent += 1
        self.max_concurrent = max(self.max_concurrent, self._concurrent)
        try:
            await asyncio.sleep(0.01)
            results: list = []
            for key in keys:
                if key in self.busy:
                    self.busy.discard(key)
                    results.append(BATCHER_RETRY_TOKEN)
                elif key in self.rows:
                    results.append(self.rows[key])
                else:
                    results.append(KeyError(key))
            return results
        finally:
            self._concurrent -= 1


class TestConcurrency:
    """Tests for concurrent request handling."""

    @pytest.mark.asyncio
    async def test_many_callers_few_round_trips(self) -> None:
        """Test concurrent callers are served with few batched calls."""
        store = FakeStore({i: f"row-{i}" for i in range(100)})
        batcher = Batcher[int, str](store.fetch_many, BatcherConfig(max_batch_size=25))

        async def caller(key: int) -> str:
            await asyncio.sleep(random.random() * 0.005)
            return await batcher.get_result(key)

        keys = list(range(100))
        results = await asyncio.gather(*(caller(k) for k in keys))

        assert results == [f"row-{k}" for k in keys]
        assert store.round_trips < 100
        assert batcher.get_stats().batches_dispatched == store.round_trips
        await batcher.idle_promise()
        assert batcher.idling

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self) -> None:
        """Test values, per-item errors and retries in the same workload."""
        store = FakeStore({1: "a", 2: "b", 3: "c"}, busy={2})
        batcher = Batcher[int, str](store.fetch_many)

        results = await asyncio.gather(
            *(batcher.get_result(k) for k in [1, 2, 3, 4]), return_exceptions=True
        )

        assert results[:3] == ["a", "b", "c"]
        assert isinstance(results[3], KeyError)
        stats = batcher.get_stats()
        assert stats.requests_retried == 1
        assert stats.requests_rejected == 1
        assert stats.requests_resolved == 3

    @pytest.mark.asyncio
    async def test_concurrency_limited_by_thresholds(self) -> None:
        """Test an infinite second threshold keeps one batch in flight."""
        store = FakeStore({i: str(i) for i in range(40)})
        batcher = Batcher[int, str](
            store.fetch_many,
            BatcherConfig(max_batch_size=5, queuing_thresholds=(1, float("inf"))),
        )

        results = await asyncio.gather(*(batcher.get_result(i) for i in range(40)))

        assert results == [str(i) for i in range(40)]
        assert store.max_concurrent == 1
        assert store.round_trips == 8

    @pytest.mark.asyncio
    async def test_concurrent_batches_allowed(self) -> None:
        """Test batches overlap when thresholds permit it."""
        store = FakeStore({i: str(i) for i in range(20)})
        batcher = Batcher[int, str](store.fetch_many, max_batch_size=5)

        await asyncio.gather(*(batcher.get_result(i) for i in range(20)))

        assert store.max_concurrent == 4
        assert batcher.get_stats().peak_active_batches == 4
