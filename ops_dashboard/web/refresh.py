"""Periodic background refresh with idle suspension."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicRefresher:
    """Run ``callback`` every ``interval`` seconds on the event loop.

    The loop skips its work while nobody has looked at the data for
    ``idle_timeout`` seconds; :meth:`touch` marks a viewer as active again.
    A failing callback is logged and retried on the next tick only.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float = 30.0,
        idle_timeout: Optional[float] = 120.0,
        name: str = "refresher",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.callback = callback
        self.interval = interval
        self.idle_timeout = idle_timeout
        self.name = name
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._suspended = False
        self._last_activity = clock()
        self._next_run_at: Optional[float] = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_idle(self) -> bool:
        if self.idle_timeout is None:
            return False
        return self._clock() - self._last_activity > self.idle_timeout

    def seconds_until_refresh(self) -> int:
        if self._next_run_at is None:
            return int(self.interval)
        return max(0, int(round(self._next_run_at - self._clock())))

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"{self.name} started (every {self.interval:g}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._next_run_at = None
        logger.info(f"{self.name} stopped")

    def touch(self) -> None:
        self._last_activity = self._clock()
        if self._suspended:
            self._suspended = False
            logger.info(f"{self.name} resumed after viewer activity")

    async def run_once(self) -> bool:
        """Run the callback unless idle. Returns True if it ran."""
        if self.is_idle:
            if not self._suspended:
                self._suspended = True
                logger.info(f"{self.name} suspended: no viewers for {self.idle_timeout:g}s")
            return False
        try:
            await self.callback()
        except Exception as e:
            logger.error(f"{self.name} refresh failed: {e}")
        self.runs += 1
        return True

    async def _loop(self) -> None:
        while True:
            self._next_run_at = self._clock() + self.interval
            await asyncio.sleep(self.interval)
            await self.run_once()
