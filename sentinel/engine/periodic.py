from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Tick = Callable[[], Awaitable[object]]


class PeriodicTask:
    """Runs an async callback on a fixed interval inside the event loop.

    The first tick runs immediately on ``start()``. Exceptions raised by a
    tick are logged and never escape the loop, so the next cycle proceeds.
    """

    def __init__(self, name: str, tick: Tick, interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._tick = tick
        self._running = False
        self._task: asyncio.Task | None = None

    # ── lifecycle ────────────────────────────────────────

    async def start(self, interval: float | None = None) -> None:
        """Start the loop, replacing one that is already running."""
        if self._running:
            await self.stop()
        if interval is not None:
            if interval <= 0:
                raise ValueError(f"interval must be positive, got {interval}")
            self.interval = interval
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info("Periodic task [%s] started (interval=%.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Periodic task [%s] stopped", self.name)

    # ── internals ───────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic task [%s] failed during tick", self.name)
            await asyncio.sleep(self.interval)

    @property
    def running(self) -> bool:
        return self._running
