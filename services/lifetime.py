"""Cancellation scope tied to the lifetime of an owning component.

Every async operation the feed starts (page load, block save) runs under a
:class:`Lifetime`. Cancelling it cancels the tracked tasks, and code that
resumes after an ``await`` checks :attr:`Lifetime.cancelled` so a late
result is dropped explicitly instead of being written into torn-down state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class Lifetime:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cancelled = False
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and track it.

        Raises ``RuntimeError`` if the lifetime has already ended.
        """
        if self._cancelled:
            coro.close()
            raise RuntimeError(f"Lifetime {self.name or id(self)} already cancelled")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Lifetime %s cancelled %d in-flight task(s)", self.name, len(pending))

    async def wait(self) -> None:
        """Wait for every tracked task to settle, ignoring their outcome."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
