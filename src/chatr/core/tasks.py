"""Fixed-interval background loops with their own start/stop lifecycle."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger("chatr.tasks")

TaskFn = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """Runs ``fn`` every ``interval`` seconds until stopped.

    ``fn`` may be sync or async. A failing run is logged and the loop keeps
    going; only cancellation ends it.

    Usage::

        sweeper = PeriodicTask("rate-limit-sweep", 60.0, limiter.sweep)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(self, name: str, interval: float, fn: TaskFn):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._fn = fn
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("Started periodic task %s (every %.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped periodic task %s after %d runs", self.name, self.runs)

    async def run_once(self) -> Any:
        result = self._fn()
        if inspect.isawaitable(result):
            result = await result
        self.runs += 1
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Periodic task %s failed: %s", self.name, exc, exc_info=True)
