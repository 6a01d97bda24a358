"""Default component checks registered by the composition root."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

import psutil

from sentinel.collectors.database_collector import PoolStats
from sentinel.engine.health_aggregator import HealthAggregator
from sentinel.models.health import ComponentHealth, HealthStatus

logger = logging.getLogger(__name__)

Ping = Callable[[], Awaitable[object]]

SLOW_DB_MS = 1000
MAX_WAITING_CLIENTS = 10


def make_database_check(ping: Ping, pool_stats: PoolStats | None = None) -> Callable[[], Awaitable[ComponentHealth]]:
    """Round-trip probe; slow responses or a queue of waiting clients degrade it."""

    async def check_database() -> ComponentHealth:
        try:
            started = time.perf_counter()
            await ping()
            response_ms = round((time.perf_counter() - started) * 1000, 2)
        except Exception as exc:
            logger.error("Database health check failed: %s", exc)
            return ComponentHealth(
                name="database",
                status=HealthStatus.UNHEALTHY,
                message=f"Database error: {exc}",
                details={"error": str(exc)},
            )

        stats = {"active_connections": 0, "idle_connections": 0, "waiting_clients": 0}
        if pool_stats is not None:
            stats.update(pool_stats() or {})

        status = HealthStatus.HEALTHY
        message = "Database is healthy"
        if response_ms > SLOW_DB_MS:
            status = HealthStatus.DEGRADED
            message = f"Database response time is slow: {response_ms}ms"
        if stats["waiting_clients"] > MAX_WAITING_CLIENTS:
            status = HealthStatus.DEGRADED
            message = f"Database connection pool has {stats['waiting_clients']} waiting clients"

        return ComponentHealth(
            name="database",
            status=status,
            message=message,
            details={"response_time_ms": response_ms, **stats},
        )

    return check_database


async def check_cpu() -> ComponentHealth:
    load = psutil.getloadavg()
    cores = psutil.cpu_count() or 1
    normalized = load[0] / cores

    status = HealthStatus.HEALTHY
    message = "CPU load is normal"
    if normalized > 0.9:
        status = HealthStatus.UNHEALTHY
        message = f"CPU load is critical: {normalized * 100:.1f}%"
    elif normalized > 0.7:
        status = HealthStatus.DEGRADED
        message = f"CPU load is high: {normalized * 100:.1f}%"

    return ComponentHealth(
        name="cpu",
        status=status,
        message=message,
        details={"load_avg": list(load), "normalized_load": normalized, "cores": cores},
    )


async def check_memory() -> ComponentHealth:
    vm = psutil.virtual_memory()
    used = vm.total - vm.available
    percent = used / vm.total * 100 if vm.total else 0.0

    status = HealthStatus.HEALTHY
    message = "Memory usage is normal"
    if percent > 90:
        status = HealthStatus.UNHEALTHY
        message = f"Memory usage is critical: {percent:.1f}%"
    elif percent > 80:
        status = HealthStatus.DEGRADED
        message = f"Memory usage is high: {percent:.1f}%"

    return ComponentHealth(
        name="memory",
        status=status,
        message=message,
        details={"total": vm.total, "free": vm.available, "used": used, "usage_percent": percent},
    )


async def check_rate_limiter() -> ComponentHealth:
    # Extension point: used when no limiter store is wired in.
    return ComponentHealth(
        name="rate-limiting",
        status=HealthStatus.HEALTHY,
        message="Rate limiter is functioning normally",
    )


def make_rate_limiter_check(ping: Ping) -> Callable[[], Awaitable[ComponentHealth]]:
    """The limiter fails closed, so an unreachable store rejects all API traffic."""

    async def check_rate_limiter_store() -> ComponentHealth:
        try:
            await ping()
        except Exception as exc:
            logger.error("Rate limiter health check failed: %s", exc)
            return ComponentHealth(
                name="rate-limiting",
                status=HealthStatus.UNHEALTHY,
                message=f"Rate limiter store unreachable: {exc}",
            )
        return ComponentHealth(
            name="rate-limiting",
            status=HealthStatus.HEALTHY,
            message="Rate limiter is functioning normally",
        )

    return check_rate_limiter_store


def register_default_checks(
    aggregator: HealthAggregator,
    database_ping: Ping | None = None,
    pool_stats: PoolStats | None = None,
    limiter_ping: Ping | None = None,
) -> None:
    if database_ping is not None:
        aggregator.register_component("database", make_database_check(database_ping, pool_stats))
    aggregator.register_component("cpu", check_cpu)
    aggregator.register_component("memory", check_memory)
    if limiter_ping is not None:
        aggregator.register_component("rate-limiting", make_rate_limiter_check(limiter_ping))
    else:
        aggregator.register_component("rate-limiting", check_rate_limiter)
