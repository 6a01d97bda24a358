"""Tests for sentinel.models: alerts, health, metrics and security types."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from sentinel.models import (
    Alert,
    AlertInput,
    AppHealth,
    HealthStatus,
    MetricsSnapshot,
    RiskLevel,
    SecurityEvent,
    SecurityEventType,
    Severity,
    SEVERITY_RANK,
    STATUS_RANK,
)


# ── Severity ──────────────────────────────────────────

class TestSeverity:
    def test_total_order(self):
        ordered = [Severity.INFO, Severity.WARNING, Severity.ERROR, Severity.CRITICAL]
        assert [s.rank for s in ordered] == [0, 1, 2, 3]

    def test_rank_table_covers_every_member(self):
        assert set(SEVERITY_RANK) == set(Severity)

    def test_values_are_lowercase(self):
        for member in Severity:
            assert member.value == member.name.lower()


# ── Alert ─────────────────────────────────────────────

class TestAlert:
    def test_defaults(self):
        a = Alert(title="t", message="m", severity=Severity.INFO)
        assert len(a.id) == 12
        assert a.source == "manual"
        assert a.tags == {}
        assert a.acknowledged is False
        assert isinstance(a.timestamp, datetime)
        assert a.timestamp.tzinfo is not None  # must be tz-aware

    def test_unique_ids(self):
        ids = {Alert(title="t", message="m", severity=Severity.INFO).id for _ in range(50)}
        assert len(ids) == 50

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            AlertInput(title="", message="m", severity=Severity.INFO)

    def test_unknown_severity_rejected(self):
        with pytest.raises(ValidationError):
            AlertInput(title="t", message="m", severity="fatal")

    def test_json_roundtrip(self):
        a = Alert(title="t", message="m", severity=Severity.ERROR, tags={"k": "v"})
        restored = Alert.model_validate_json(a.model_dump_json())
        assert restored == a


# ── Health ────────────────────────────────────────────

class TestHealth:
    def test_unknown_ranks_below_healthy(self):
        assert STATUS_RANK[HealthStatus.UNKNOWN] < STATUS_RANK[HealthStatus.HEALTHY]

    def test_app_health_defaults(self):
        h = AppHealth(status=HealthStatus.HEALTHY)
        assert h.components == []
        assert h.uptime == 0


# ── Metrics ───────────────────────────────────────────

class TestMetricsSnapshot:
    def test_zero_defaults(self):
        s = MetricsSnapshot()
        assert s.cpu.usage == 0.0
        assert s.disk.usage_percent == 0.0
        assert s.custom == {}

    def test_sections_are_frozen(self):
        s = MetricsSnapshot()
        with pytest.raises(ValidationError):
            s.cpu.usage = 50.0


# ── Security ──────────────────────────────────────────

class TestSecurityEvent:
    def test_defaults(self):
        e = SecurityEvent(event_type=SecurityEventType.LOGIN_FAILURE)
        assert e.risk_level == RiskLevel.LOW
        assert e.details == {}
        assert e.created_at.tzinfo is not None

    def test_accepts_string_values(self):
        e = SecurityEvent(event_type="XSS_ATTEMPT", risk_level="HIGH")
        assert e.event_type == SecurityEventType.XSS_ATTEMPT
        assert e.risk_level == RiskLevel.HIGH

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            SecurityEvent(event_type="TELEPORT")
