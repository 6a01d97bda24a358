from __future__ import annotations

import time

import psutil

from sentinel.collectors.base import BaseCollector
from sentinel.models.metrics import ProcessMetrics


class ProcessCollector(BaseCollector):
    """Introspects the current process: uptime, RSS, CPU share and handles."""

    name = "process"

    def __init__(self) -> None:
        self._proc = psutil.Process()
        # First cpu_percent() call only primes psutil's internal counter.
        self._field("cpu percent", lambda: self._proc.cpu_percent(interval=None), 0.0)

    async def collect(self) -> ProcessMetrics:
        proc = self._proc
        cores = self._field("core count", psutil.cpu_count, 1) or 1

        uptime = self._field("uptime", lambda: time.time() - proc.create_time(), 0.0)
        rss = self._field("memory", lambda: proc.memory_info().rss, 0)
        cpu = self._field("cpu percent", lambda: proc.cpu_percent(interval=None), 0.0)

        return ProcessMetrics(
            uptime=round(max(uptime, 0.0), 1),
            memory=int(rss),
            cpu=round(min(cpu / cores, 100.0), 2),
            active_handles=self._field("handles", self._handle_count, 0),
        )

    def _handle_count(self) -> int:
        if hasattr(self._proc, "num_fds"):
            return self._proc.num_fds()
        return self._proc.num_handles()  # Windows
