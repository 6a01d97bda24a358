from __future__ import annotations

from pathlib import Path

import psutil

from sentinel.collectors.base import BaseCollector
from sentinel.models.metrics import DiskMetrics


class DiskCollector(BaseCollector):
    """Usage of the filesystem that holds ``path``."""

    name = "disk"

    def __init__(self, path: str | Path = "/") -> None:
        self.path = str(path)

    async def collect(self) -> DiskMetrics:
        usage = psutil.disk_usage(self.path)
        return DiskMetrics(
            total=int(usage.total),
            free=int(usage.free),
            used=int(usage.used),
            usage_percent=float(usage.percent),
        )
