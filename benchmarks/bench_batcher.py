#!/usr/bin/env python3
"""
Batcher performance benchmarks.

Measures per-request overhead of queuing, dispatch and result distribution.
"""

import asyncio
import time
from typing import Any

from promise_batcher import BATCHER_RETRY_TOKEN, Batcher, BatcherConfig


def echo(inputs: list[int]) -> list[int]:
    """Batching function returning its inputs."""
    return inputs


async def run_requests(batcher: Batcher, iterations: int) -> float:
    start = time.perf_counter()
    await asyncio.gather(*(batcher.get_result(i) for i in range(iterations)))
    await batcher.idle_promise()
    return time.perf_counter() - start


def _result(name: str, iterations: int, elapsed: float, batcher: Batcher) -> dict[str, Any]:
    return {
        "name": name,
        "iterations": iterations,
        "batches": batcher.get_stats().batches_dispatched,
        "elapsed_seconds": elapsed,
        "throughput_ops": iterations / elapsed,
        "latency_us": (elapsed / iterations) * 1_000_000,
    }


async def benchmark_single_batch(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark one unbounded batch."""
    batcher = Batcher(echo)
    elapsed = await run_requests(batcher, iterations)
    return _result("Single unbounded batch", iterations, elapsed, batcher)


async def benchmark_max_batch_size(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark many full batches."""
    batcher = Batcher(echo, BatcherConfig(max_batch_size=100))
    elapsed = await run_requests(batcher, iterations)
    return _result("max_batch_size=100", iterations, elapsed, batcher)


async def benchmark_serial_batches(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark batches limited to one in flight."""

    async def slow_echo(inputs: list[int]) -> list[int]:
        await asyncio.sleep(0)
        return inputs

    batcher = Batcher(
        slow_echo,
        BatcherConfig(max_batch_size=100, queuing_thresholds=(1, float("inf"))),
    )
    elapsed = await run_requests(batcher, iterations)
    return _result("Serial batches (thresholds=(1, inf))", iterations, elapsed, batcher)


async def benchmark_retries(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark every request retried once."""
    seen: set[int] = set()

    def retry_once(inputs: list[int]) -> list[Any]:
        outputs: list[Any] = []
        for i in inputs:
            if i in seen:
                outputs.append(i)
            else:
                seen.add(i)
                outputs.append(BATCHER_RETRY_TOKEN)
        return outputs

    batcher = Batcher(retry_once, BatcherConfig(max_batch_size=100))
    elapsed = await run_requests(batcher, iterations)
    return _result("Retry once (max_batch_size=100)", iterations, elapsed, batcher)


async def main() -> None:
    """Run all benchmarks."""
    print("=" * 70)
    print("promise-batcher benchmarks")
    print("=" * 70)

    for benchmark in (
        benchmark_single_batch,
        benchmark_max_batch_size,
        benchmark_serial_batches,
        benchmark_retries,
    ):
        result = await benchmark()
        print(
            f"{result['name']:<40} {result['throughput_ops']:>12,.0f} ops/s "
            f"{result['latency_us']:>8.2f} us/op {result['batches']:>6} batches"
        )


if __name__ == "__main__":
    asyncio.run(main())
