"""
Detached background work (refresh-ahead, cross-tier promotion).
"""
import asyncio
import logging
from typing import Any, Awaitable, Dict, Set


class BackgroundTasks:
    """
    Fire-and-forget task runner.

    Tasks are not awaited by whoever spawns them. Strong references are
    kept until each task finishes, and failures are logged on the owner's
    logger instead of being raised into caller code.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], description: str) -> asyncio.Task:
        """Schedule a coroutine on the running loop without waiting for it."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                self._logger.debug(f"Background task cancelled: {description}")
                return
            exc = t.exception()
            if exc is not None:
                self._logger.warning(f"Background task failed: {description} - {exc!r}")

        task.add_done_callback(_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait until every task spawned so far, and any they spawn, has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # Let done-callbacks run before re-checking the set
            await asyncio.sleep(0)

    def get_stats(self) -> Dict[str, Any]:
        return {"pending": len(self._tasks)}
