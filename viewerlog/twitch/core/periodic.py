"""Sequential periodic background task."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

LOGGER = logging.getLogger("Periodic")


class PeriodicTask:
    """Run an async callable every *interval* seconds on one background task.

    Runs never overlap: the next wait starts only after the previous run
    returns. The first run happens immediately on ``start()``. ``stop()``
    wakes the wait and lets an in-flight run finish instead of cancelling it.
    Exceptions raised by a run are logged and the loop continues.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable[object]]):
        self.name = name
        self.interval = interval
        self._func = func
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            LOGGER.warning(f"{self.name} is already running")
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return

        self._stopping.set()
        self._task = None
        # stop() may be reached from inside the task's own run
        if task is not asyncio.current_task():
            await task

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self._func()
            except Exception:
                LOGGER.exception(f"{self.name} run failed")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
