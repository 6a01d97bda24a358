from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


class CpuMetrics(_Section):
    usage: float = 0.0  # percent, 0-100
    load_avg: tuple[float, float, float] = (0.0, 0.0, 0.0)
    core_count: int = 0


class MemoryMetrics(_Section):
    total: int = 0
    free: int = 0
    used: int = 0
    usage_percent: float = 0.0


class DiskMetrics(_Section):
    total: int = 0
    free: int = 0
    used: int = 0
    usage_percent: float = 0.0


class ProcessMetrics(_Section):
    uptime: float = 0.0  # seconds
    memory: int = 0  # resident bytes
    cpu: float = 0.0  # percent of the whole machine
    active_handles: int = 0
    active_requests: int = 0


class NetworkMetrics(_Section):
    connections: int = 0
    bytes_received: int = 0  # cumulative counters
    bytes_sent: int = 0
    bytes_received_per_sec: float = 0.0
    bytes_sent_per_sec: float = 0.0
    requests_per_second: float = 0.0


class DatabaseMetrics(_Section):
    connections: int = 0
    query_time_ms: float = 0.0  # mean over the sampling interval
    query_count: int = 0


class MetricsSnapshot(_Section):
    """Point-in-time sample of process and system metrics."""

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    cpu: CpuMetrics = CpuMetrics()
    memory: MemoryMetrics = MemoryMetrics()
    disk: DiskMetrics = DiskMetrics()
    process: ProcessMetrics = ProcessMetrics()
    network: NetworkMetrics = NetworkMetrics()
    database: DatabaseMetrics = DatabaseMetrics()
    custom: dict[str, float] = Field(default_factory=dict)
