"""Fire-and-forget background task dispatch on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class TaskDispatcher:
    """Schedule coroutines without awaiting them.

    The caller gets the task handle back immediately. Failures are logged, never
    raised to the caller; the work itself is responsible for recording a
    terminal status. Strong references are kept until each task finishes so the
    loop cannot garbage collect a running task.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def dispatch(self, name: str, factory: TaskFactory) -> asyncio.Task[Any]:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(name, factory), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Dispatched background task %s", name)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks, including ones they dispatch while draining."""

        while self._tasks:
            done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
            if pending:
                logger.warning("%s background task(s) still running after drain timeout", len(pending))
                return

    @staticmethod
    async def _run(name: str, factory: TaskFactory) -> Any:
        try:
            return await factory()
        except asyncio.CancelledError:
            logger.warning("Background task %s was cancelled", name)
            raise
        except Exception:
            logger.exception("Background task %s failed", name)
            return None


__all__ = ["TaskDispatcher", "TaskFactory"]
