"""Bounded concurrency: run coroutines in fixed-size groups with a cooldown."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

SleepFn = Callable[[float], Awaitable[None]]


async def run_in_groups(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    group_size: int,
    pause_seconds: float = 0.0,
    sleep: SleepFn = asyncio.sleep,
) -> list[R | BaseException]:
    """Run ``worker`` over ``items`` with at most ``group_size`` in flight.

    Each group is awaited with ``gather(return_exceptions=True)``, so one
    failing item never cancels its siblings. The pause runs between groups,
    not after the last one.

    Returns:
        One entry per input item, in input order: the worker's result or the
        exception it raised
    """
    size = max(1, group_size)
    results: list[R | BaseException] = []
    for start in range(0, len(items), size):
        if start and pause_seconds > 0:
            await sleep(pause_seconds)
        group = items[start : start + size]
        results.extend(await asyncio.gather(*(worker(item) for item in group), return_exceptions=True))
    return results
