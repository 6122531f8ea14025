"""Cancellable fixed-interval background task.

The owner keeps the only reference to the running task; ``start()`` on a
task that is already running cancels the previous loop first, so at most
one loop per instance is ever active.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

import structlog


logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Run an async callback every ``interval`` seconds until stopped.

    The first call happens one interval after ``start()``. Exceptions raised
    by the callback are logged and the loop keeps going.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float,
        name: str = "periodic_task",
    ) -> None:
        self.callback = callback
        self.interval = interval
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        """Check if the loop is active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop, replacing any loop already running."""
        if self._task is not None:
            self._task.cancel()
        self._task = asyncio.create_task(self._run(), name=self.name)

    def stop(self) -> None:
        """Request cancellation without waiting for it."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def aclose(self) -> None:
        """Cancel the loop and wait until it has finished."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except Exception:
                logger.exception("periodic_task_error", task=self.name)
