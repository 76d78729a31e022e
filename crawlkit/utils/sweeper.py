"""
Periodic background sweeps.

Used for idle-session eviction, stale in-flight request cleanup and stale
wire-protocol correlation expiry. Each sweeper is one asyncio task that is
cancelled by ``stop()``.
"""

import asyncio
from collections.abc import Awaitable, Callable

from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)

SweepCallback = Callable[[], Awaitable[int] | int | None]


class PeriodicSweeper:
    """Run a callback every ``interval`` seconds until stopped.

    The callback may be sync or async and may return the number of items it
    removed, which is logged when non-zero.
    """

    def __init__(self, name: str, interval: float, callback: SweepCallback):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self._interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> int:
        result = self._callback()
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            result = await result
        removed = int(result or 0)
        if removed:
            logger.debug("Sweep removed entries", sweeper=self.name, removed=removed)
        return removed

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.warning("Sweep failed", sweeper=self.name, error=str(e))

    def start(self) -> None:
        """Start the background loop (no-op when already running)."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"sweeper:{self.name}")

    async def stop(self) -> None:
        """Stop the background loop."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
