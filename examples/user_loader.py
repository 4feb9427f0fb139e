"""
Example: batching user lookups.

Many independent coroutines ask for single users; the batcher turns them into
a few multi-key queries.

Key features:
- Batched lookups with max_batch_size
- Per-item errors for missing users
- Retrying rows that were locked
- Waiting for all work with idle_promise()
"""

import asyncio
import random

from promise_batcher import BATCHER_RETRY_TOKEN, Batcher, BatcherConfig
from promise_batcher.telemetry import BatcherLogger, LogLevel

USERS = {i: {"id": i, "name": f"user-{i}"} for i in range(1, 50)}
LOCKED = {7, 21}


async def fetch_users(ids: list[int]) -> list:
    """Simulated multi-key query."""
    print(f"query: SELECT * FROM users WHERE id IN {tuple(ids)}")
    await asyncio.sleep(0.05)
    results: list = []
    for user_id in ids:
        if user_id in LOCKED:
            LOCKED.discard(user_id)
            results.append(BATCHER_RETRY_TOKEN)
        elif user_id in USERS:
            results.append(USERS[user_id])
        else:
            results.append(LookupError(f"user {user_id} not found"))
    return results


async def handle_request(batcher: Batcher, user_id: int) -> None:
    await asyncio.sleep(random.random() * 0.02)
    try:
        user = await batcher.get_result(user_id)
        print(f"request {user_id}: {user['name']}")
    except LookupError as e:
        print(f"request {user_id}: {e}")


async def main() -> None:
    BatcherLogger.configure(level=LogLevel.INFO)
    batcher = Batcher(
        fetch_users,
        BatcherConfig(max_batch_size=10, queuing_delay_ms=5),
        name="users",
    )

    await asyncio.gather(*(handle_request(batcher, i) for i in range(1, 56)))
    await batcher.idle_promise()

    stats = batcher.get_stats()
    print(stats.model_dump_json(indent=2))


if __name__ == "__main__":
    asyncio.run(main())
