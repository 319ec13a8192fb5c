# =============================================================================
# File: titan/core/background_tasks.py
# Description: Background task management for fire-and-forget remote calls
# =============================================================================

import asyncio
import logging
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger("titan.background")


class BackgroundTasks:
    """
    Tracks fire-and-forget tasks so callers never block on network I/O,
    while shutdown and tests can still wait for everything in flight.

    Tasks are expected to handle their own errors; anything that escapes
    is logged here rather than lost with the task object.
    """

    def __init__(self, name: str = "titan"):
        self._name = name
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine on the running loop and track it"""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"[{self._name}] Background task {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"[{self._name}] Unhandled error in background task {task.get_name()}: {exc}",
                exc_info=exc
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until no tracked task is running, including ones spawned while waiting"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

