"""Notification sinks for the alert dispatcher.

Every channel implements ``send(alert) -> bool``. Channels may raise; the
dispatcher isolates each one so a failing sink never blocks the others.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import httpx

from sentinel.config import AlertSettings
from sentinel.models import Alert, Severity

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("sentinel.alerts")

_LOG_LEVELS: dict[Severity, int] = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}

_CHAT_ICONS: dict[Severity, str] = {
    Severity.INFO: ":information_source:",
    Severity.WARNING: ":warning:",
    Severity.ERROR: ":x:",
    Severity.CRITICAL: ":rotating_light:",
}

_CHAT_COLORS: dict[Severity, str] = {
    Severity.INFO: "#439fe0",
    Severity.WARNING: "warning",
    Severity.ERROR: "danger",
    Severity.CRITICAL: "danger",
}


class AlertChannel(ABC):
    name: str = "base"

    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        ...


class LogChannel(AlertChannel):
    """Structured-log sink; always available."""

    name = "log"

    async def send(self, alert: Alert) -> bool:
        alert_logger.log(
            _LOG_LEVELS[alert.severity],
            "ALERT [%s] %s: %s",
            alert.severity.value.upper(),
            alert.title,
            alert.message,
            extra={
                "alert_id": alert.id,
                "alert_source": alert.source,
                "alert_tags": alert.tags,
            },
        )
        return True


class _HttpChannel(AlertChannel):
    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @abstractmethod
    def payload(self, alert: Alert) -> dict[str, Any]:
        ...

    async def send(self, alert: Alert) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(self.url, json=self.payload(alert))
            resp.raise_for_status()
        return True


class WebhookChannel(_HttpChannel):
    """POSTs the alert itself as JSON."""

    name = "webhook"

    def payload(self, alert: Alert) -> dict[str, Any]:
        return alert.model_dump(mode="json")


class ChatWebhookChannel(_HttpChannel):
    """Maps the alert onto a Slack-style incoming-webhook message."""

    name = "chat"

    def __init__(self, url: str, username: str = "ChainSync Monitoring", **kwargs: Any) -> None:
        super().__init__(url, **kwargs)
        self.username = username

    def payload(self, alert: Alert) -> dict[str, Any]:
        fields = [
            {"title": "Severity", "value": alert.severity.value, "short": True},
            {"title": "Source", "value": alert.source, "short": True},
        ]
        fields.extend(
            {"title": key, "value": value, "short": True}
            for key, value in alert.tags.items()
        )
        return {
            "text": f"[{alert.severity.value.upper()}] {alert.title}",
            "username": self.username,
            "icon_emoji": _CHAT_ICONS[alert.severity],
            "attachments": [
                {
                    "color": _CHAT_COLORS[alert.severity],
                    "text": alert.message,
                    "fields": fields,
                    "ts": int(alert.timestamp.timestamp()),
                }
            ],
        }


class EmailChannel(AlertChannel):
    """Placeholder: logs what would be mailed. No SMTP transport."""

    name = "email"

    def __init__(self, recipients: list[str]) -> None:
        self.recipients = list(recipients)

    async def send(self, alert: Alert) -> bool:
        if not self.recipients:
            logger.debug("Email channel has no recipients; skipping alert %s", alert.id)
            return False
        logger.info(
            "Would send email alert %s to %s: %s",
            alert.id, ", ".join(self.recipients), alert.title,
        )
        return True


class SmsChannel(AlertChannel):
    """Placeholder: logs what would be texted. No SMS gateway."""

    name = "sms"

    def __init__(self, recipients: list[str]) -> None:
        self.recipients = list(recipients)

    async def send(self, alert: Alert) -> bool:
        if not self.recipients:
            logger.debug("SMS channel has no recipients; skipping alert %s", alert.id)
            return False
        logger.info(
            "Would send SMS alert %s to %s: [%s] %s",
            alert.id, ", ".join(self.recipients), alert.severity.value.upper(), alert.title,
        )
        return True


class WebSocketChannel(AlertChannel):
    """Pushes alerts to connected dashboard clients."""

    name = "websocket"

    def __init__(self, broadcast: Callable[[dict], Awaitable[None]]) -> None:
        self._broadcast = broadcast

    async def send(self, alert: Alert) -> bool:
        await self._broadcast({"type": "alert", "alert": alert.model_dump(mode="json")})
        return True


def build_channels(
    cfg: AlertSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, AlertChannel]:
    """Instantiate the channels named in ``cfg.channels``.

    Unknown names and HTTP channels without a URL are skipped with a warning.
    """
    channels: dict[str, AlertChannel] = {}
    for raw in cfg.channels:
        name = raw.strip().lower()
        if name == "log":
            channels[name] = LogChannel()
        elif name == "webhook":
            if not cfg.webhook_url:
                logger.warning("Webhook channel enabled without webhook_url; skipping")
                continue
            channels[name] = WebhookChannel(
                cfg.webhook_url, timeout=cfg.request_timeout, transport=transport,
            )
        elif name in ("chat", "slack"):
            if not cfg.chat_webhook_url:
                logger.warning("Chat channel enabled without chat_webhook_url; skipping")
                continue
            channels["chat"] = ChatWebhookChannel(
                cfg.chat_webhook_url, timeout=cfg.request_timeout, transport=transport,
            )
        elif name == "email":
            channels[name] = EmailChannel(cfg.email_recipients)
        elif name == "sms":
            channels[name] = SmsChannel(cfg.sms_recipients)
        else:
            logger.warning("Unknown alert channel: %s", raw)
    return channels
