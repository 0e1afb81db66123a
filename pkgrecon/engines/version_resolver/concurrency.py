"""Bounded worker pool for per-package network work."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
    on_result: Callable[[T, R, int, int], None] | None = None,
) -> list[tuple[T, R]]:
    """Run *worker* over *items* with at most *concurrency* in flight.

    Results come back in completion order. *on_result(item, result,
    completed, total)* runs here, in the aggregating coroutine, exactly once
    per item; workers must not touch shared state themselves.
    """
    total = len(items)
    if total == 0:
        return []
    sem = asyncio.Semaphore(max(1, concurrency))

    async def _run_one(item: T) -> tuple[T, R]:
        async with sem:
            return item, await worker(item)

    done: list[tuple[T, R]] = []
    for fut in asyncio.as_completed([_run_one(item) for item in items]):
        item, result = await fut
        done.append((item, result))
        if on_result is not None:
            on_result(item, result, len(done), total)
    return done
