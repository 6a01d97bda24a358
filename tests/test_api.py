"""Tests for sentinel.api routes, the request guard and the WebSocket feed."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from sentinel.api.routes import ConnectionManager, ws_manager
from sentinel.engine.health_aggregator import HealthAggregator
from sentinel.engine.intrusion_detector import IntrusionDetector
from sentinel.engine.metrics_registry import MetricsRegistry
from sentinel.engine.rate_limiter import RateLimiter
from sentinel.errors import TransientIOError
from sentinel.main import app
from sentinel.models import AlertInput, ComponentHealth, HealthStatus, Severity

_STATE_KEYS = ("dispatcher", "metrics", "health", "intrusion", "rate_limiter")


class Check:
    def __init__(self) -> None:
        self.status = HealthStatus.HEALTHY

    def __call__(self) -> ComponentHealth:
        return ComponentHealth(name="database", status=self.status)


# ── fixtures ───────────────────────────────────────────


@pytest.fixture
def db_check() -> Check:
    return Check()


@pytest.fixture
def _setup_app_state(dispatcher, store, fake_redis, db_check):
    """Inject the services so routes work without the full lifespan."""
    health = HealthAggregator(dispatcher, version="9.9.9")
    health.register_component("database", db_check)

    app.state.dispatcher = dispatcher
    app.state.metrics = MetricsRegistry(dispatcher, collectors={})
    app.state.health = health
    app.state.intrusion = IntrusionDetector(store, dispatcher)
    app.state.rate_limiter = RateLimiter(fake_redis, window=60, max_requests=5)
    yield
    for key in _STATE_KEYS:
        if hasattr(app.state, key):
            delattr(app.state, key)


@pytest.fixture
async def client(_setup_app_state):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ── health ─────────────────────────────────────────────


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy_is_200(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["version"] == "9.9.9"
        assert body["components"][0]["name"] == "database"

    @pytest.mark.asyncio
    async def test_degraded_is_200(self, client, db_check):
        db_check.status = HealthStatus.DEGRADED
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_unhealthy_is_503(self, client, db_check):
        db_check.status = HealthStatus.UNHEALTHY
        resp = await client.get("/api/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_history(self, client):
        await client.get("/api/health")
        await client.get("/api/health")
        resp = await client.get("/api/health/history")
        assert len(resp.json()) == 2


# ── metrics ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_metrics_collected_on_demand(client):
    app.state.metrics.set_custom_metric("queue_depth", 7)
    resp = await client.get("/api/metrics")
    assert resp.status_code == 200
    body = resp.json()
    assert body["custom"]["queue_depth"] == 7
    assert "cpu" in body and "disk" in body


# ── alerts ─────────────────────────────────────────────


class TestAlerts:
    @pytest.mark.asyncio
    async def test_empty(self, client):
        resp = await client.get("/api/alerts")
        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.asyncio
    async def test_list_filter_and_acknowledge(self, client, dispatcher):
        warn = await dispatcher.alert(AlertInput(title="w", message="m", severity=Severity.WARNING))
        await dispatcher.alert(AlertInput(title="c", message="m", severity=Severity.CRITICAL))

        assert len((await client.get("/api/alerts")).json()) == 2
        crit = (await client.get("/api/alerts", params={"severity": "critical"})).json()
        assert [a["title"] for a in crit] == ["c"]

        resp = await client.post(f"/api/alerts/{warn.id}/acknowledge", params={"by": "oncall"})
        assert resp.status_code == 200
        assert resp.json()["acknowledged"] is True

        active = (await client.get("/api/alerts", params={"active": "true"})).json()
        assert [a["title"] for a in active] == ["c"]

    @pytest.mark.asyncio
    async def test_acknowledge_not_found(self, client):
        resp = await client.post("/api/alerts/nonexistent/acknowledge")
        assert resp.status_code == 404


# ── security / status ──────────────────────────────────


@pytest.mark.asyncio
async def test_security_report(client):
    await app.state.intrusion.log_security_event("LOGIN_FAILURE", {"ip": "10.1.1.1"})
    resp = await client.get("/api/security/report", params={"hours": 1})
    assert resp.status_code == 200
    body = resp.json()
    assert body["timeframe_hours"] == 1
    assert body["total_events"] == 1
    assert body["unique_ips"] == 1


@pytest.mark.asyncio
async def test_status(client):
    resp = await client.get("/api/status")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "running"
    assert data["metrics_collecting"] is False
    assert data["health_components"] == ["database"]
    assert data["channels"] == ["recording"]


# ── request guard ──────────────────────────────────────


class TestRequestGuard:
    @pytest.mark.asyncio
    async def test_rate_limit_rejects_with_429(self, client, store):
        for _ in range(5):
            assert (await client.get("/api/status")).status_code == 200
        resp = await client.get("/api/status")
        assert resp.status_code == 429

        report = await app.state.intrusion.generate_security_report(1)
        assert report.event_breakdown[0]["event_type"] == "RATE_LIMIT_EXCEEDED"

    @pytest.mark.asyncio
    async def test_limiter_outage_fails_closed(self, client, fake_redis):
        fake_redis.fail = True
        resp = await client.get("/api/status")
        assert resp.status_code == 503

    @pytest.mark.asyncio
    async def test_attack_signature_rejected(self, client):
        resp = await client.get("/api/alerts", params={"q": "' OR 1=1 --"})
        assert resp.status_code == 400

        report = await app.state.intrusion.generate_security_report(1)
        assert report.high_risk_events[0]["event_type"] == "SQL_INJECTION_ATTEMPT"

    @pytest.mark.asyncio
    async def test_attack_with_store_outage_is_503(self, client, store, monkeypatch):
        monkeypatch.setattr(store, "insert_event", AsyncMock(side_effect=TransientIOError("db down")))
        resp = await client.get("/api/alerts", params={"q": "<script>alert(1)</script>"})
        assert resp.status_code == 503

    @pytest.mark.asyncio
    async def test_requests_counted(self, client):
        await client.get("/api/status")
        snapshot = await app.state.metrics.collect_metrics()
        assert snapshot.network.requests_per_second > 0
        assert snapshot.process.active_requests == 0


# ── WebSocket ──────────────────────────────────────────


def test_websocket_registers_client():
    client = TestClient(app)
    with client.websocket_connect("/ws/alerts"):
        # the endpoint registers the socket just after the handshake completes
        for _ in range(50):
            if ws_manager.active_connections:
                break
            time.sleep(0.01)
        assert len(ws_manager.active_connections) == 1


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_broadcast_drops_dead_sockets(self):
        manager = ConnectionManager()
        alive, dead = AsyncMock(), AsyncMock()
        dead.send_json.side_effect = RuntimeError("closed")
        await manager.connect(alive)
        await manager.connect(dead)

        await manager.broadcast({"title": "x"})

        alive.send_json.assert_awaited_once_with({"title": "x"})
        assert manager.active_connections == [alive]

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self):
        manager = ConnectionManager()
        manager.disconnect(AsyncMock())
        assert manager.active_connections == []
