"""Tests for sentinel.db.database: the SQLite security event store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sentinel.db.database import SecurityEventStore
from sentinel.errors import TransientIOError
from sentinel.models import RiskLevel, SecurityEvent, SecurityEventType


def _event(event_type=SecurityEventType.LOGIN_FAILURE, risk=RiskLevel.LOW, age_hours=0.0, **details):
    return SecurityEvent(
        event_type=event_type,
        details=details,
        risk_level=risk,
        created_at=datetime.now(timezone.utc) - timedelta(hours=age_hours),
    )


def _hour_ago() -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=1)


@pytest.mark.asyncio
async def test_init_creates_parent_dirs(tmp_path):
    store = SecurityEventStore(tmp_path / "nested" / "dir" / "events.db")
    await store.init()
    assert (tmp_path / "nested" / "dir" / "events.db").exists()
    assert await store.ping() is True


@pytest.mark.asyncio
async def test_init_is_idempotent(store):
    await store.init()
    await store.insert_event(_event())


@pytest.mark.asyncio
async def test_count_actor_events(store):
    for _ in range(3):
        await store.insert_event(_event(actor_id="u1", ip="10.0.0.1"))
    await store.insert_event(_event(SecurityEventType.RATE_LIMIT_EXCEEDED, actor_id="u1"))
    await store.insert_event(_event(actor_id="u2"))
    await store.insert_event(_event(actor_id="u1", age_hours=3))  # outside the window

    counts = await store.count_actor_events("u1", _hour_ago())
    assert counts == {"LOGIN_FAILURE": 3, "RATE_LIMIT_EXCEEDED": 1}


@pytest.mark.asyncio
async def test_event_breakdown_groups_by_type_and_level(store):
    await store.insert_event(_event(SecurityEventType.XSS_ATTEMPT, RiskLevel.HIGH))
    await store.insert_event(_event(SecurityEventType.XSS_ATTEMPT, RiskLevel.HIGH))
    await store.insert_event(_event(SecurityEventType.LOGIN_FAILURE, RiskLevel.LOW))

    rows = await store.event_breakdown(_hour_ago())
    assert rows[0] == {"event_type": "XSS_ATTEMPT", "risk_level": "HIGH", "count": 2}
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_high_risk_events_newest_first(store):
    await store.insert_event(_event(SecurityEventType.SQL_INJECTION_ATTEMPT, RiskLevel.HIGH, age_hours=0.5, n=1))
    await store.insert_event(_event(SecurityEventType.COMMAND_INJECTION_ATTEMPT, RiskLevel.CRITICAL, n=2))
    await store.insert_event(_event(SecurityEventType.LOGIN_FAILURE, RiskLevel.MEDIUM, n=3))

    rows = await store.high_risk_events(_hour_ago())
    assert [r["details"]["n"] for r in rows] == [2, 1]

    limited = await store.high_risk_events(_hour_ago(), limit=1)
    assert len(limited) == 1


@pytest.mark.asyncio
async def test_distinct_counts(store):
    await store.insert_event(_event(ip="1.1.1.1", actor_id="a"))
    await store.insert_event(_event(ip="1.1.1.1", actor_id="b"))
    await store.insert_event(_event(ip="2.2.2.2"))

    assert await store.distinct_ips(_hour_ago()) == 2
    assert await store.distinct_actors(_hour_ago()) == 2


@pytest.mark.asyncio
async def test_insert_alert(store):
    await store.insert_alert("SUSPICIOUS_IP", {"ip": "1.1.1.1", "event_count": 3})
    alerts = await store.get_alerts()
    assert alerts[0]["alert_type"] == "SUSPICIOUS_IP"
    assert alerts[0]["details"]["event_count"] == 3


@pytest.mark.asyncio
async def test_unreachable_store_raises_transient(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = SecurityEventStore(blocker / "events.db")
    with pytest.raises(TransientIOError):
        await store.init()
    with pytest.raises(TransientIOError):
        await store.insert_event(_event())
