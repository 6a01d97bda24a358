from __future__ import annotations

import psutil

from sentinel.collectors.base import BaseCollector
from sentinel.models.metrics import NetworkMetrics


class NetworkCollector(BaseCollector):
    """Open inet connections and cumulative NIC byte counters.

    Per-second rates need the previous snapshot and are filled in by the
    metrics registry.
    """

    name = "network"

    async def collect(self) -> NetworkMetrics:
        connections = self._field(
            "connections", lambda: len(psutil.net_connections(kind="inet")), 0,
        )
        counters = self._field("io counters", psutil.net_io_counters, None)
        return NetworkMetrics(
            connections=connections,
            bytes_received=int(counters.bytes_recv) if counters else 0,
            bytes_sent=int(counters.bytes_sent) if counters else 0,
        )
