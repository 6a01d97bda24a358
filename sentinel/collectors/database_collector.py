from __future__ import annotations

from typing import Callable

from sentinel.collectors.base import BaseCollector
from sentinel.models.metrics import DatabaseMetrics

PoolStats = Callable[[], dict]


class DatabaseCollector(BaseCollector):
    """Connection-pool occupancy from an optional provider.

    Query timings are recorded by callers on the metrics registry and merged
    into this section there.
    """

    name = "database"

    def __init__(self, pool_stats: PoolStats | None = None) -> None:
        self._pool_stats = pool_stats

    async def collect(self) -> DatabaseMetrics:
        if self._pool_stats is None:
            return DatabaseMetrics()
        stats = self._pool_stats() or {}
        connections = stats.get("total_connections")
        if connections is None:
            connections = stats.get("active_connections", 0) + stats.get("idle_connections", 0)
        return DatabaseMetrics(connections=int(connections))
