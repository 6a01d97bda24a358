from __future__ import annotations

import inspect
import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from sentinel.config import AlertSettings
from sentinel.engine.channels import AlertChannel, build_channels
from sentinel.engine.periodic import PeriodicTask
from sentinel.errors import ValidationError
from sentinel.models import Alert, AlertInput, Severity

logger = logging.getLogger(__name__)

RulePredicate = Callable[[], Any]  # returns bool or an awaitable of bool


class AlertRule(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    predicate: RulePredicate
    template: AlertInput
    enabled: bool = True
    cooldown: float = 0.0  # seconds; 0 fires on every matching tick
    last_triggered: float | None = None


class AlertDispatcher:
    """Central sink for notable conditions.

    Keeps a bounded FIFO history, fans each alert out to every configured
    channel whose severity floor it meets, and evaluates registered rules on
    a timer.
    """

    def __init__(
        self,
        config: AlertSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._transport = transport
        self._history: deque[Alert] = deque()
        self._channels: dict[str, AlertChannel] = {}
        self._custom_channels: dict[str, AlertChannel] = {}
        self._rules: dict[str, AlertRule] = {}
        self._config = AlertSettings()
        self._rule_task = PeriodicTask("alert-rules", self.evaluate_rules, self._config.rule_interval)
        self.configure(config or AlertSettings())

    # ── configuration ───────────────────────────────────

    def configure(self, config: AlertSettings) -> None:
        """Apply channel list, severity floor and channel settings. Safe to call at runtime."""
        self._config = config
        self._history = deque(self._history, maxlen=config.history_size)
        self._channels = build_channels(config, transport=self._transport)
        self._rule_task.interval = config.rule_interval
        logger.info(
            "Alert dispatcher configured: channels=%s min_severity=%s",
            sorted(self.channels), config.min_severity.value,
        )

    def register_channel(self, name: str, channel: AlertChannel) -> None:
        self._custom_channels[name] = channel

    def unregister_channel(self, name: str) -> bool:
        return self._custom_channels.pop(name, None) is not None

    @property
    def config(self) -> AlertSettings:
        return self._config

    @property
    def channels(self) -> dict[str, AlertChannel]:
        return {**self._channels, **self._custom_channels}

    # ── alerting ────────────────────────────────────────

    async def alert(self, data: AlertInput | dict[str, Any]) -> Alert:
        """Record an alert and deliver it to every eligible channel."""
        try:
            payload = data if isinstance(data, AlertInput) else AlertInput.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"malformed alert payload: {exc}") from exc

        alert = Alert(**payload.model_dump())
        self._history.append(alert)

        if alert.severity.rank < self._config.min_severity.rank:
            logger.debug(
                "Alert %s (%s) below min severity %s; not delivered",
                alert.id, alert.severity.value, self._config.min_severity.value,
            )
            return alert

        await self._fan_out(alert)
        return alert

    async def _fan_out(self, alert: Alert) -> None:
        for name, channel in self.channels.items():
            try:
                delivered = await channel.send(alert)
            except Exception:
                logger.exception("Alert channel [%s] failed for alert %s", name, alert.id)
                continue
            if not delivered:
                logger.debug("Alert channel [%s] skipped alert %s", name, alert.id)

    # ── rules ───────────────────────────────────────────

    def add_rule(
        self,
        name: str,
        predicate: RulePredicate,
        template: AlertInput | dict[str, Any],
        cooldown: float = 0.0,
    ) -> AlertRule:
        try:
            tpl = template if isinstance(template, AlertInput) else AlertInput.model_validate(template)
        except PydanticValidationError as exc:
            raise ValidationError(f"malformed alert template for rule {name!r}: {exc}") from exc
        rule = AlertRule(name=name, predicate=predicate, template=tpl, cooldown=cooldown)
        self._rules[name] = rule
        logger.info("Alert rule added: %s", name)
        return rule

    def remove_rule(self, name: str) -> bool:
        removed = self._rules.pop(name, None) is not None
        if removed:
            logger.info("Alert rule removed: %s", name)
        return removed

    def set_rule_enabled(self, name: str, enabled: bool) -> bool:
        rule = self._rules.get(name)
        if rule is None:
            return False
        rule.enabled = enabled
        return True

    def get_rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    async def evaluate_rules(self) -> int:
        """Run every enabled rule once. Returns the number of alerts fired."""
        fired = 0
        now = time.monotonic()
        for rule in list(self._rules.values()):
            if not rule.enabled:
                continue
            if (
                rule.cooldown
                and rule.last_triggered is not None
                and now - rule.last_triggered < rule.cooldown
            ):
                continue
            try:
                result = rule.predicate()
                if inspect.isawaitable(result):
                    result = await result
            except Exception:
                logger.exception("Alert rule [%s] predicate failed", rule.name)
                continue
            if not result:
                continue

            rule.last_triggered = now
            template = rule.template
            await self.alert(
                template.model_copy(update={"tags": {**template.tags, "rule": rule.name}})
            )
            fired += 1
        return fired

    async def start_rule_evaluation(self, interval: float | None = None) -> None:
        await self._rule_task.start(interval)

    @property
    def evaluating(self) -> bool:
        return self._rule_task.running

    # ── history ─────────────────────────────────────────

    def acknowledge_alert(self, alert_id: str, acknowledged_by: str) -> bool:
        for alert in self._history:
            if alert.id == alert_id:
                alert.acknowledged = True
                alert.acknowledged_by = acknowledged_by
                alert.acknowledged_at = datetime.now(timezone.utc)
                logger.info("Alert %s acknowledged by %s", alert_id, acknowledged_by)
                return True
        return False

    def get_alert_history(self) -> list[Alert]:
        return [a.model_copy(deep=True) for a in self._history]

    def get_active_alerts(self) -> list[Alert]:
        return [a.model_copy(deep=True) for a in self._history if not a.acknowledged]

    def get_alerts_by_severity(self, severity: Severity) -> list[Alert]:
        return [a.model_copy(deep=True) for a in self._history if a.severity == severity]

    # ── lifecycle ───────────────────────────────────────

    async def shutdown(self) -> None:
        await self._rule_task.stop()
