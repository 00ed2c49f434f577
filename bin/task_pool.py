#!/usr/bin/env python3
"""
PageBench bounded task pool.

Queue + worker coroutines running async tasks with a concurrency ceiling.
Standard library only: pandoc_batch.py imports it while being timed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar


T = TypeVar("T")


def _report(progress: Optional[Any], message: str) -> None:
    # tqdm bars print through write() so the bar is not torn
    write = getattr(progress, "write", None)
    if write is not None:
        write(message)
    else:
        print(message)


async def run_bounded(
    tasks: Sequence[Callable[[], Awaitable[T]]],
    ceiling: int,
    progress: Optional[Any] = None,
) -> list[T]:
    """
    Run zero-argument async tasks with at most `ceiling` in flight.

    Uses a queue with min(ceiling, len(tasks)) worker coroutines; a worker
    that finishes a task immediately pulls the next one.

    Results are returned in submission order. A failing task does not cancel
    its siblings and is not raised the moment it happens: every queued task
    still runs to completion, then the first failure observed is re-raised.
    This departs from fail-fast on purpose: siblings of a failed task always
    finish their writes before the failure surfaces.

    Args:
        tasks: Zero-argument callables returning awaitables
        ceiling: Maximum concurrently running tasks (>= 1)
        progress: Optional tqdm-like bar, update(1) per settled task

    Returns:
        Task results, ordered like `tasks`
    """
    if ceiling < 1:
        raise ValueError(f"ceiling must be >= 1, got {ceiling}")

    q: asyncio.Queue[tuple[int, Callable[[], Awaitable[T]]]] = asyncio.Queue()
    for idx, task in enumerate(tasks):
        q.put_nowait((idx, task))

    results: list[Any] = [None] * q.qsize()
    failures: list[Exception] = []

    async def worker():
        while True:
            try:
                idx, task = q.get_nowait()
            except asyncio.QueueEmpty:
                return

            try:
                results[idx] = await task()
            except Exception as e:
                failures.append(e)
            finally:
                q.task_done()
                if progress is not None:
                    progress.update(1)

    workers = [
        asyncio.create_task(worker())
        for _ in range(min(ceiling, len(results)))
    ]

    await asyncio.gather(*workers)

    if failures:
        for extra in failures[1:]:
            _report(progress, f"[Warning] Additional task failure: {extra}")
        raise failures[0]

    return results
