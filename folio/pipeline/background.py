"""
Detached background execution.

Kickoff hands orchestration work to a BackgroundRunner and returns right
away. Tasks are created on the event loop, not inside the request that
submitted them, so they keep running after the caller's response is sent
or the caller disconnects. A task's failure is logged and reported; it
never surfaces to the submitter.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

from folio.integrations.sentry import capture_exception

logger = logging.getLogger(__name__)


class BackgroundRunner:
    """
    Holds strong references to in-flight tasks until they finish.

    Usage:
        runner = BackgroundRunner()
        runner.submit(orchestrator.run(job.id, unit), name="translate:unit_1")
        ...
        await runner.drain()
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Submitted background task %s (%d active)", task.get_name(), self.active)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Background task %s failed: %s", task.get_name(), error, exc_info=error
            )
            capture_exception(error, task=task.get_name())

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait until every submitted task, including ones submitted while
        waiting, has finished.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        while self._tasks:
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            if remaining == 0:
                raise asyncio.TimeoutError(f"{self.active} background task(s) still running")
            await asyncio.wait(set(self._tasks), timeout=remaining)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Give running tasks a grace period, then cancel what is left."""
        try:
            await self.drain(timeout=timeout)
        except asyncio.TimeoutError:
            pending = list(self._tasks)
            logger.warning("Cancelling %d unfinished background task(s)", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
