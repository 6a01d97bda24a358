from __future__ import annotations

import asyncio

import psutil

from sentinel.collectors.base import BaseCollector
from sentinel.models.metrics import CpuMetrics


class CpuCollector(BaseCollector):
    """Samples machine-wide CPU usage from a short busy/idle probe.

    ``psutil.cpu_times()`` sums every core, so the busy ratio over the probe
    is already normalised by core count. The probe awaits instead of
    blocking the event loop.
    """

    name = "cpu"

    def __init__(self, probe_seconds: float = 0.1) -> None:
        self.probe_seconds = probe_seconds

    async def collect(self) -> CpuMetrics:
        start = psutil.cpu_times()
        await asyncio.sleep(self.probe_seconds)
        end = psutil.cpu_times()

        load = self._field("load average", psutil.getloadavg, (0.0, 0.0, 0.0))
        cores = self._field("core count", psutil.cpu_count, 0) or 0

        return CpuMetrics(
            usage=round(self.busy_percent(start, end), 2),
            load_avg=tuple(float(v) for v in load),
            core_count=cores,
        )

    @staticmethod
    def busy_percent(start, end) -> float:
        total = sum(end) - sum(start)
        if total <= 0:
            return 0.0
        idle = (end.idle + getattr(end, "iowait", 0.0)) - (
            start.idle + getattr(start, "iowait", 0.0)
        )
        busy = total - idle
        return max(0.0, min(100.0, busy / total * 100.0))
