from __future__ import annotations

import json
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from sentinel.config import IntrusionSettings
from sentinel.db.database import SecurityEventStore
from sentinel.engine.alert_dispatcher import AlertDispatcher
from sentinel.engine.periodic import PeriodicTask
from sentinel.errors import ValidationError
from sentinel.models import AlertInput, Severity
from sentinel.models.security import (
    RequestSurface,
    RiskLevel,
    SecurityEvent,
    SecurityEventType,
    SecurityReport,
    SuspicionReport,
    SuspiciousIPRecord,
    ThreatAnalysis,
    ThreatType,
)

logger = logging.getLogger(__name__)

SUSPICIOUS_IP_ALERT = "SUSPICIOUS_IP"
HIGH_RISK_REPORT_LIMIT = 50

# Checked top to bottom; the first family with a match classifies the request.
THREAT_SIGNATURES: list[tuple[ThreatType, RiskLevel, list[re.Pattern[str]]]] = [
    (
        ThreatType.COMMAND_INJECTION,
        RiskLevel.CRITICAL,
        [
            re.compile(
                r"[;&|`]\s*(cat|ls|rm|wget|curl|nc|bash|sh|ping|nslookup|traceroute|netstat|whoami|uname)\b",
                re.IGNORECASE,
            ),
            re.compile(r"\$\([^)]*\)"),
            re.compile(r"\bcmd(\.exe)?\s+/c\b", re.IGNORECASE),
        ],
    ),
    (
        ThreatType.SQL_INJECTION,
        RiskLevel.HIGH,
        [
            re.compile(r"'\s*(or|and)\s+['\w]+\s*=\s*['\w]+", re.IGNORECASE),
            re.compile(r"'\s*(--|#|/\*)"),
            re.compile(r";\s*(drop|delete|insert|update|truncate|alter)\b", re.IGNORECASE),
            re.compile(r"\bunion\b.*\bselect\b", re.IGNORECASE),
            re.compile(
                r"\b(select|insert|update|delete|drop|create|alter)\b.*\b(from|into|where|table|database)\b",
                re.IGNORECASE,
            ),
            re.compile(r"\b(exec|execute)\s+(sp_|xp_)\w+", re.IGNORECASE),
        ],
    ),
    (
        ThreatType.XSS,
        RiskLevel.HIGH,
        [
            re.compile(r"<script\b[^>]*>", re.IGNORECASE),
            re.compile(r"javascript:", re.IGNORECASE),
            re.compile(r"\bon\w+\s*=", re.IGNORECASE),
            re.compile(r"<iframe\b[^>]*>", re.IGNORECASE),
            re.compile(r"<object\b[^>]*>", re.IGNORECASE),
        ],
    ),
    (
        ThreatType.PATH_TRAVERSAL,
        RiskLevel.MEDIUM,
        [
            re.compile(r"\.\./"),
            re.compile(r"\.\.\\"),
            re.compile(r"%2e%2e%2f", re.IGNORECASE),
            re.compile(r"%2e%2e%5c", re.IGNORECASE),
        ],
    ),
]


def request_text(surface: RequestSurface) -> str:
    """Flatten the scanned parts of a request into one string."""
    return " ".join(
        [
            surface.path,
            json.dumps(surface.query, default=str),
            json.dumps(surface.body, default=str),
            json.dumps(surface.headers, default=str),
        ]
    )


class IntrusionDetector:
    """Signature matching on inbound requests plus per-actor and per-IP scoring.

    Security events are persisted to the durable store before any threshold
    is evaluated. Per-IP counters live in memory and are evicted once an IP
    has been quiet for ``suspicious_ip_ttl`` seconds.
    """

    def __init__(
        self,
        store: SecurityEventStore,
        dispatcher: AlertDispatcher,
        settings: IntrusionSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings or IntrusionSettings()
        self._clock = clock
        self._suspicious_ips: dict[str, SuspiciousIPRecord] = {}
        self._cleanup_task = PeriodicTask(
            "intrusion-cleanup", self._cleanup_tick, self._settings.cleanup_interval
        )

    # ── lifecycle ───────────────────────────────────────

    async def start(self) -> None:
        await self._cleanup_task.start()

    async def shutdown(self) -> None:
        await self._cleanup_task.stop()

    @property
    def running(self) -> bool:
        return self._cleanup_task.running

    # ── events ──────────────────────────────────────────

    async def log_security_event(
        self,
        event_type: SecurityEventType | str,
        details: dict[str, Any] | None = None,
        risk_level: RiskLevel | str = RiskLevel.LOW,
    ) -> SecurityEvent:
        """Persist an event, then evaluate per-IP thresholds.

        Store failures propagate as ``TransientIOError``.
        """
        try:
            event = SecurityEvent(
                event_type=event_type, details=details or {}, risk_level=risk_level
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"malformed security event: {exc}") from exc

        await self._store.insert_event(event)
        logger.info(
            "Security event logged: %s (%s)", event.event_type.value, event.risk_level.value,
            extra={"event_details": event.details},
        )
        await self.check_alert_thresholds(event.event_type, event.details)
        return event

    async def check_alert_thresholds(
        self, event_type: SecurityEventType | str, details: dict[str, Any]
    ) -> bool:
        """Count the event against its source IP. Returns True if an alert fired."""
        try:
            event_type = SecurityEventType(event_type)
        except ValueError as exc:
            raise ValidationError(f"unknown security event type: {event_type!r}") from exc

        ip = details.get("ip")
        if not ip:
            return False

        now = self._clock()
        record = self._suspicious_ips.setdefault(ip, SuspiciousIPRecord())
        record.count += 1
        record.last_seen = now

        if record.count < self._settings.suspicious_ip_threshold:
            return False
        cooldown = self._settings.alert_cooldown
        if cooldown and record.last_alert is not None and now - record.last_alert < cooldown:
            logger.debug("Suspicious-IP alert for %s suppressed (cooldown)", ip)
            return False
        record.last_alert = now

        alert_details = {
            "ip": ip,
            "event_count": record.count,
            "last_event": event_type.value,
            "details": details,
        }
        await self._store.insert_alert(SUSPICIOUS_IP_ALERT, alert_details)
        logger.warning("Security alert triggered: %s for %s", SUSPICIOUS_IP_ALERT, ip)
        await self._dispatcher.alert(
            AlertInput(
                title="Suspicious IP activity",
                message=f"{ip} produced {record.count} security events (last: {event_type.value})",
                severity=Severity.WARNING,
                source="intrusion-detector",
                tags={"alert_type": SUSPICIOUS_IP_ALERT, "ip": ip},
                data=alert_details,
            )
        )
        return True

    # ── analysis ────────────────────────────────────────

    def analyze_request(self, surface: RequestSurface | dict[str, Any]) -> ThreatAnalysis:
        if not isinstance(surface, RequestSurface):
            surface = RequestSurface.model_validate(surface)
        text = request_text(surface)

        for threat_type, risk_level, patterns in THREAT_SIGNATURES:
            matches = [m.group(0) for p in patterns for m in p.finditer(text)]
            if matches:
                logger.debug("Request matched %s signatures: %s", threat_type.value, matches)
                return ThreatAnalysis(
                    is_threat=True,
                    threat_type=threat_type,
                    risk_level=risk_level,
                    matches=matches,
                )
        return ThreatAnalysis()

    async def detect_suspicious_activity(self, actor_id: str) -> SuspicionReport:
        since = datetime.now(timezone.utc) - timedelta(seconds=self._settings.activity_window)
        counts = await self._store.count_actor_events(actor_id, since)

        patterns: list[str] = []
        score = 0
        if counts.get(SecurityEventType.LOGIN_FAILURE.value, 0) > 3:
            patterns.append("Multiple failed login attempts")
            score += 30
        if counts.get(SecurityEventType.RATE_LIMIT_EXCEEDED.value, 0) > 2:
            patterns.append("Rate limit violations")
            score += 25
        if counts.get(SecurityEventType.SUSPICIOUS_ACTIVITY.value, 0) > 1:
            patterns.append("Suspicious activity patterns")
            score += 40

        return SuspicionReport(is_suspicious=score > 50, patterns=patterns, risk_score=score)

    async def generate_security_report(self, timeframe_hours: float = 24) -> SecurityReport:
        since = datetime.now(timezone.utc) - timedelta(hours=timeframe_hours)
        breakdown = await self._store.event_breakdown(since)
        high_risk = await self._store.high_risk_events(since, limit=HIGH_RISK_REPORT_LIMIT)
        return SecurityReport(
            timeframe_hours=timeframe_hours,
            total_events=sum(row["count"] for row in breakdown),
            unique_ips=await self._store.distinct_ips(since),
            unique_actors=await self._store.distinct_actors(since),
            event_breakdown=breakdown,
            high_risk_events=high_risk,
        )

    # ── per-IP bookkeeping ──────────────────────────────

    @property
    def suspicious_ips(self) -> dict[str, SuspiciousIPRecord]:
        return {ip: r.model_copy() for ip, r in self._suspicious_ips.items()}

    def cleanup_suspicious_ips(self) -> int:
        """Drop IPs idle for longer than the configured TTL. Returns the number removed."""
        cutoff = self._clock() - self._settings.suspicious_ip_ttl
        stale = [ip for ip, r in self._suspicious_ips.items() if r.last_seen < cutoff]
        for ip in stale:
            del self._suspicious_ips[ip]
        if stale:
            logger.info("Evicted %d idle suspicious-IP records", len(stale))
        return len(stale)

    async def _cleanup_tick(self) -> None:
        self.cleanup_suspicious_ips()
