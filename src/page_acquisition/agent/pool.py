"""Bounded worker pool for fan-out over connectors and pending items."""

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
) -> list[R]:
    """
    Run ``worker`` over ``items`` with at most ``limit`` in flight.
    Results come back in input order regardless of completion order.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def guarded(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(guarded(item) for item in items)))
