"""
Tracked fire-and-forget tasks.

Side effects that must not block the caller (cache usage write-back,
for example) are scheduled here instead of as bare create_task calls.
The set keeps a strong reference until the task finishes, failures are
logged, and drain() lets shutdown and tests wait for pending work.

Delivery is best-effort: a task that is still pending when the process
exits is lost.
"""

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """A set of detached asyncio tasks with logged failures."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every task scheduled so far (and any they schedule)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
