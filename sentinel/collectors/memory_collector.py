from __future__ import annotations

import psutil

from sentinel.collectors.base import BaseCollector
from sentinel.models.metrics import MemoryMetrics


class MemoryCollector(BaseCollector):
    """System memory; "free" is what the OS reports as available."""

    name = "memory"

    async def collect(self) -> MemoryMetrics:
        vm = psutil.virtual_memory()
        total = int(vm.total)
        free = int(vm.available)
        used = max(total - free, 0)
        percent = (used / total * 100.0) if total else 0.0
        return MemoryMetrics(
            total=total,
            free=free,
            used=used,
            usage_percent=round(percent, 2),
        )
