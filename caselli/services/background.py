"""
Fire-and-forget task dispatcher.

Task-history writes, memory extraction and the tail of a disconnected turn
all run detached from the request. The dispatcher keeps a strong reference
to every task until it finishes (the event loop only holds weak ones),
logs failures instead of letting them surface as "exception never
retrieved", and can be drained on shutdown.
"""

import asyncio
from typing import Any, Awaitable, Optional, Set

from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class BackgroundDispatcher:
    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[Any], name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine and track it until completion."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        return self.track(task)

    def track(self, task: asyncio.Task) -> asyncio.Task:
        """Adopt an already running task (e.g. a turn whose client went away)."""
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for outstanding tasks; cancel whatever is left after `timeout`."""
        if not self._tasks:
            return

        pending = list(self._tasks)
        logger.info("Draining background tasks", count=len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)

        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled background tasks on shutdown", count=len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)
