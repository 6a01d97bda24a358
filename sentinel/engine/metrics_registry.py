from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError as PydanticValidationError

from sentinel.collectors import (
    BaseCollector,
    CpuCollector,
    DatabaseCollector,
    DiskCollector,
    MemoryCollector,
    NetworkCollector,
    ProcessCollector,
)
from sentinel.collectors.database_collector import PoolStats
from sentinel.config import MetricThresholds
from sentinel.engine.alert_dispatcher import AlertDispatcher
from sentinel.engine.periodic import PeriodicTask
from sentinel.errors import ConfigurationError, InternalLogicError
from sentinel.models import Alert, AlertInput, Severity
from sentinel.models.metrics import (
    CpuMetrics,
    DatabaseMetrics,
    DiskMetrics,
    MemoryMetrics,
    MetricsSnapshot,
    NetworkMetrics,
    ProcessMetrics,
)

logger = logging.getLogger(__name__)

SECTIONS: dict[str, type[BaseModel]] = {
    "cpu": CpuMetrics,
    "memory": MemoryMetrics,
    "disk": DiskMetrics,
    "process": ProcessMetrics,
    "network": NetworkMetrics,
    "database": DatabaseMetrics,
}

_THRESHOLD_LABELS = {
    "cpu": ("CPU usage", "%"),
    "memory": ("Memory usage", "%"),
    "disk": ("Disk usage", "%"),
    "query_time": ("Database query time", "ms"),
}


def default_collectors(
    cpu_probe_seconds: float = 0.1,
    disk_path: str = "/",
    pool_stats: PoolStats | None = None,
) -> dict[str, BaseCollector]:
    return {
        "cpu": CpuCollector(probe_seconds=cpu_probe_seconds),
        "memory": MemoryCollector(),
        "disk": DiskCollector(disk_path),
        "process": ProcessCollector(),
        "network": NetworkCollector(),
        "database": DatabaseCollector(pool_stats),
    }


class MetricsRegistry:
    """Periodic sampler of process and system metrics.

    Only the current and the previous snapshot are kept. Each new snapshot
    is checked against the configured warning/critical thresholds.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        thresholds: MetricThresholds | None = None,
        collectors: Mapping[str, BaseCollector] | None = None,
        interval: float = 15.0,
    ) -> None:
        self._dispatcher = dispatcher
        self._thresholds = thresholds or MetricThresholds()
        self._collectors = dict(collectors) if collectors is not None else default_collectors()
        self._custom: dict[str, float] = {}
        self._current: MetricsSnapshot | None = None
        self._previous: MetricsSnapshot | None = None
        self._collecting = False
        self._task = PeriodicTask("metrics", self.collect_metrics, interval)

        # in-process counters fed by the request pipeline
        self._last_sample_at = time.monotonic()
        self._requests_since_sample = 0
        self._active_requests = 0
        self._query_times: list[float] = []

    # ── lifecycle ───────────────────────────────────────

    async def start_collection(self, interval: float | None = None) -> None:
        await self._task.start(interval)

    async def stop_collection(self) -> None:
        await self._task.stop()

    async def shutdown(self) -> None:
        await self.stop_collection()

    @property
    def collecting(self) -> bool:
        return self._task.running

    # ── custom gauges and request counters ──────────────

    def set_custom_metric(self, name: str, value: float) -> None:
        self._custom[name] = float(value)

    def remove_custom_metric(self, name: str) -> bool:
        return self._custom.pop(name, None) is not None

    def get_custom_metrics(self) -> dict[str, float]:
        return dict(self._custom)

    def record_request(self) -> None:
        self._requests_since_sample += 1

    def request_started(self) -> None:
        self._active_requests += 1
        self._requests_since_sample += 1

    def request_finished(self) -> None:
        self._active_requests = max(self._active_requests - 1, 0)

    def record_query(self, duration_ms: float) -> None:
        self._query_times.append(float(duration_ms))

    # ── sampling ────────────────────────────────────────

    def get_metrics(self) -> MetricsSnapshot | None:
        return self._current

    def get_previous_metrics(self) -> MetricsSnapshot | None:
        return self._previous

    async def collect_metrics(self) -> MetricsSnapshot | None:
        """Take one snapshot. Returns None if a collection is already in flight."""
        if self._collecting:
            logger.debug("Metrics collection already in progress; skipping")
            return None

        self._collecting = True
        try:
            snapshot = await self._sample()
            self._previous, self._current = self._current, snapshot
            await self.check_thresholds(snapshot)
            return snapshot
        finally:
            self._collecting = False

    async def _sample(self) -> MetricsSnapshot:
        sections: dict[str, Any] = {}
        for name, model in SECTIONS.items():
            collector = self._collectors.get(name)
            if collector is None:
                sections[name] = model()
                continue
            try:
                section = await collector.collect()
                if not isinstance(section, model):
                    raise InternalLogicError(
                        f"collector [{name}] returned {type(section).__name__}, expected {model.__name__}"
                    )
                sections[name] = section
            except Exception:
                logger.exception("Metric section [%s] failed; defaulting to zero", name)
                sections[name] = model()

        now = time.monotonic()
        elapsed = now - self._last_sample_at
        self._last_sample_at = now

        requests, self._requests_since_sample = self._requests_since_sample, 0
        queries, self._query_times = self._query_times, []

        network: NetworkMetrics = sections["network"]
        sections["network"] = network.model_copy(update=self._rates(network, requests, elapsed))
        sections["process"] = sections["process"].model_copy(
            update={"active_requests": self._active_requests}
        )
        sections["database"] = sections["database"].model_copy(
            update={
                "query_count": len(queries),
                "query_time_ms": round(sum(queries) / len(queries), 2) if queries else 0.0,
            }
        )
        return MetricsSnapshot(custom=dict(self._custom), **sections)

    def _rates(self, network: NetworkMetrics, requests: int, elapsed: float) -> dict[str, float]:
        if elapsed <= 0:
            return {"bytes_received_per_sec": 0.0, "bytes_sent_per_sec": 0.0, "requests_per_second": 0.0}

        rates = {
            "bytes_received_per_sec": 0.0,
            "bytes_sent_per_sec": 0.0,
            "requests_per_second": round(requests / elapsed, 2),
        }
        prev = self._current.network if self._current else None
        if prev is not None:
            received = network.bytes_received - prev.bytes_received
            sent = network.bytes_sent - prev.bytes_sent
            # counters reset (interface restart) produce negative deltas
            if received >= 0:
                rates["bytes_received_per_sec"] = round(received / elapsed, 2)
            if sent >= 0:
                rates["bytes_sent_per_sec"] = round(sent / elapsed, 2)
        return rates

    # ── thresholds ──────────────────────────────────────

    @property
    def thresholds(self) -> MetricThresholds:
        return self._thresholds

    def configure_thresholds(self, overrides: Mapping[str, Mapping[str, float]]) -> MetricThresholds:
        """Merge partial overrides, e.g. ``{"cpu": {"warning": 70}}``."""
        merged = self._thresholds.model_dump()
        for category, values in overrides.items():
            if category not in merged:
                raise ConfigurationError(f"unknown threshold category: {category}")
            merged[category].update(values)
        try:
            self._thresholds = MetricThresholds.model_validate(merged)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"invalid thresholds: {exc}") from exc
        logger.info("Metric thresholds updated: %s", overrides)
        return self._thresholds

    async def check_thresholds(self, snapshot: MetricsSnapshot) -> list[Alert]:
        """Fire at most one alert per category; critical takes precedence over warning."""
        values = {
            "cpu": snapshot.cpu.usage,
            "memory": snapshot.memory.usage_percent,
            "disk": snapshot.disk.usage_percent,
            "query_time": snapshot.database.query_time_ms,
        }
        fired: list[Alert] = []
        for category, value in values.items():
            pair = getattr(self._thresholds, category)
            if value >= pair.critical:
                severity, limit = Severity.CRITICAL, pair.critical
            elif value >= pair.warning:
                severity, limit = Severity.WARNING, pair.warning
            else:
                continue

            label, unit = _THRESHOLD_LABELS[category]
            fired.append(
                await self._dispatcher.alert(
                    AlertInput(
                        title=f"{label} {severity.value}",
                        message=f"{label} is {value:.1f}{unit} (threshold {limit:g}{unit})",
                        severity=severity,
                        source=f"metrics:{category}",
                        tags={"category": category, "level": severity.value},
                        data={"value": value, "threshold": limit},
                    )
                )
            )
        return fired
