"""
In-flight computation registry (singleflight).

One asyncio.Task per wallet address. Callers for the same address join the
existing task instead of starting another. Check and insert happen with no
await in between, so the registry needs no lock on the event loop. The entry
is removed exactly once, by the task's done-callback.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Awaitable, Callable, Generic, TypeVar

from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class InFlightRegistry(Generic[T]):
    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[T]] = {}
        self.settled = 0
        """Number of entries removed so far (one per settled task)."""

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def get(self, key: str) -> asyncio.Task[T] | None:
        task = self._tasks.get(key)
        if task is None or task.done():
            return None
        return task

    def join_or_start(self, key: str, factory: Callable[[], Awaitable[T]]) -> tuple[asyncio.Task[T], bool]:
        """
        Return (task, started). factory is only called when no live task exists,
        so joiners never create a coroutine.
        """
        task = self.get(key)
        if task is not None:
            return task, False
        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(partial(self._settle, key))
        return task, True

    def _settle(self, key: str, task: asyncio.Task[T]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
            self.settled += 1
        if not task.cancelled() and task.exception() is not None:
            # Waiters get the error through their own await; this only marks it retrieved
            logger.debug("inflight_task_failed", key=key[:16], error=str(task.exception()))

    async def cancel_all(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
