from __future__ import annotations

import inspect
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Iterable

from sentinel.engine.alert_dispatcher import AlertDispatcher
from sentinel.engine.metrics_registry import MetricsRegistry
from sentinel.engine.periodic import PeriodicTask
from sentinel.models import AlertInput, Severity
from sentinel.models.health import (
    STATUS_GAUGE,
    STATUS_RANK,
    AppHealth,
    ComponentHealth,
    HealthStatus,
)

logger = logging.getLogger(__name__)

CheckFn = Callable[[], ComponentHealth | Awaitable[ComponentHealth]]
StatusListener = Callable[[HealthStatus, HealthStatus, AppHealth], Any]

_TRANSITION_ALERTS: dict[HealthStatus, tuple[Severity, str, str]] = {
    HealthStatus.DEGRADED: (
        Severity.WARNING,
        "System health degraded",
        "The system health status has degraded. Affected components:",
    ),
    HealthStatus.UNHEALTHY: (
        Severity.CRITICAL,
        "System health critical",
        "The system health status is critical. Affected components:",
    ),
}


def aggregate_status(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Worst known status wins; unknown components never raise the aggregate."""
    worst = HealthStatus.HEALTHY
    for status in statuses:
        if STATUS_RANK[status] > STATUS_RANK[worst]:
            worst = status
    return worst


def http_status_for(status: HealthStatus) -> int:
    return 503 if status == HealthStatus.UNHEALTHY else 200


class HealthAggregator:
    """Runs named component checks and tracks the overall status over time."""

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        metrics: MetricsRegistry | None = None,
        version: str = "1.0.0",
        interval: float = 60.0,
        history_size: int = 100,
    ) -> None:
        self._dispatcher = dispatcher
        self._metrics = metrics
        self.version = version
        self._components: dict[str, CheckFn] = {}
        self._listeners: list[StatusListener] = []
        self._history: deque[AppHealth] = deque(maxlen=history_size)
        self._last_status = HealthStatus.UNKNOWN
        self._started_at = time.monotonic()
        self._task = PeriodicTask("health", self.check_health, interval)

    # ── registration ────────────────────────────────────

    def register_component(self, name: str, check: CheckFn) -> None:
        self._components[name] = check
        logger.info("Registered health check component: %s", name)

    def unregister_component(self, name: str) -> bool:
        removed = self._components.pop(name, None) is not None
        if removed:
            if self._metrics is not None:
                self._metrics.remove_custom_metric(f"health_{name}")
            logger.info("Unregistered health check component: %s", name)
        return removed

    @property
    def components(self) -> list[str]:
        return list(self._components)

    def add_status_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        self._listeners.remove(listener)

    # ── lifecycle ───────────────────────────────────────

    async def start_health_checks(self, interval: float | None = None) -> None:
        await self._task.start(interval)

    async def stop_health_checks(self) -> None:
        await self._task.stop()

    async def shutdown(self) -> None:
        await self.stop_health_checks()

    @property
    def running(self) -> bool:
        return self._task.running

    # ── checks ──────────────────────────────────────────

    async def check_health(self) -> AppHealth:
        logger.debug("Running full health check")
        results = [await self._run_check(name, check) for name, check in list(self._components.items())]

        health = AppHealth(
            status=aggregate_status(r.status for r in results),
            components=results,
            version=self.version,
            uptime=int(time.monotonic() - self._started_at),
        )
        self._history.append(health)

        previous = self._last_status
        if health.status != previous:
            self._last_status = health.status
            await self._handle_transition(previous, health)

        self._mirror_metrics(health)
        return health

    async def _run_check(self, name: str, check: CheckFn) -> ComponentHealth:
        try:
            result = check()
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, ComponentHealth):
                result = ComponentHealth.model_validate(result)
            return result
        except Exception as exc:
            logger.error("Health check failed for component %s: %s", name, exc)
            return ComponentHealth(
                name=name,
                status=HealthStatus.UNKNOWN,
                message=f"Check failed: {exc}",
            )

    async def _handle_transition(self, previous: HealthStatus, health: AppHealth) -> None:
        logger.info("Health status changed from %s to %s", previous.value, health.status.value)

        transition = _TRANSITION_ALERTS.get(health.status)
        if transition is not None:
            severity, title, lead = transition
            affected = [
                f"{c.name}: {c.message}" for c in health.components if c.status == health.status
            ]
            try:
                await self._dispatcher.alert(
                    AlertInput(
                        title=title,
                        message="\n".join([lead, *affected]),
                        severity=severity,
                        source="app-health",
                        tags={
                            "component": "health-monitor",
                            "prev_status": previous.value,
                            "new_status": health.status.value,
                        },
                    )
                )
            except Exception:
                logger.exception("Failed to raise health transition alert")

        for listener in list(self._listeners):
            try:
                result = listener(previous, health.status, health)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Health status listener %s failed", listener)

    def _mirror_metrics(self, health: AppHealth) -> None:
        if self._metrics is None:
            return
        self._metrics.set_custom_metric("health_status", STATUS_GAUGE[health.status])
        self._metrics.set_custom_metric("uptime_seconds", health.uptime)
        for component in health.components:
            self._metrics.set_custom_metric(f"health_{component.name}", STATUS_GAUGE[component.status])
            if component.name == "database" and component.details:
                details = component.details
                self._metrics.set_custom_metric("db_response_time_ms", details.get("response_time_ms", 0))
                self._metrics.set_custom_metric("db_active_connections", details.get("active_connections", 0))
                self._metrics.set_custom_metric("db_idle_connections", details.get("idle_connections", 0))
                self._metrics.set_custom_metric("db_waiting_clients", details.get("waiting_clients", 0))

    # ── introspection ───────────────────────────────────

    @property
    def last_status(self) -> HealthStatus:
        return self._last_status

    def get_health_history(self) -> list[AppHealth]:
        return list(self._history)
