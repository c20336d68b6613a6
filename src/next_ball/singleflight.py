"""Process-local request coalescing: one in-flight task per key."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any


class SingleFlight:
    """Concurrent callers of `run` with the same key share one execution.

    Callers await a shielded task, so a cancelled or timed-out caller leaves the
    shared work running for everyone else. The key is released when the task
    finishes, successfully or not.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._tasks

    def task_for(self, key: str, factory: Callable[[], Awaitable[Any]]) -> asyncio.Task[Any]:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        return task

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled():
            # Mark the exception retrieved; every awaiting caller still receives it.
            task.exception()

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        return await asyncio.shield(self.task_for(key, factory))
