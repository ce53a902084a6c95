"""
Bounded-concurrency scheduler — ordered ``map`` over coroutines.

Runs on a single event loop: ``deque.popleft`` between awaits cannot
race, so no lock guards the work queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def parallel_map(
    items: Sequence[T],
    concurrency: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Apply ``fn`` to every item with at most ``concurrency`` in flight.

    Results come back in input order regardless of completion order.
    After the first failure no new items are started; work already in
    flight finishes, then that first error is raised.
    """
    count = len(items)
    if count == 0:
        return []

    results: list[R | None] = [None] * count
    queue: deque[int] = deque(range(count))
    errors: list[Exception] = []

    async def worker() -> None:
        while queue and not errors:
            index = queue.popleft()
            try:
                results[index] = await fn(items[index])
            except Exception as e:
                errors.append(e)
                return

    workers = min(max(1, concurrency), count)
    logger.debug("parallel_map: %d item(s), %d worker(s)", count, workers)
    await asyncio.gather(*(worker() for _ in range(workers)))

    if errors:
        raise errors[0]
    return results  # type: ignore[return-value]
