from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from sentinel.engine.health_aggregator import http_status_for
from sentinel.errors import TransientIOError
from sentinel.models import Severity

logger = logging.getLogger(__name__)

router = APIRouter()


# ── WebSocket connection manager ──────────────────────


class ConnectionManager:
    """Tracks dashboard WebSocket clients and pushes alerts to them."""

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, data: dict) -> None:
        dead: list[WebSocket] = []
        for ws in self.active_connections:
            try:
                await ws.send_json(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


ws_manager = ConnectionManager()


# ── health ────────────────────────────────────────────


@router.get("/api/health")
async def get_health(request: Request) -> JSONResponse:
    health = await request.app.state.health.check_health()
    return JSONResponse(
        content=health.model_dump(mode="json"),
        status_code=http_status_for(health.status),
    )


@router.get("/api/health/history")
async def get_health_history(request: Request) -> list[dict]:
    return [h.model_dump(mode="json") for h in request.app.state.health.get_health_history()]


# ── metrics ───────────────────────────────────────────


@router.get("/api/metrics")
async def get_metrics(request: Request) -> dict:
    snapshot = request.app.state.metrics.get_metrics()
    if snapshot is None:
        snapshot = await request.app.state.metrics.collect_metrics()
    if snapshot is None:
        raise HTTPException(status_code=503, detail="Metrics not yet available")
    return snapshot.model_dump(mode="json")


# ── alerts ────────────────────────────────────────────


@router.get("/api/alerts")
async def get_alerts(
    request: Request,
    severity: Severity | None = None,
    active: bool = False,
) -> list[dict]:
    dispatcher = request.app.state.dispatcher
    if severity is not None:
        alerts = dispatcher.get_alerts_by_severity(severity)
    elif active:
        alerts = dispatcher.get_active_alerts()
    else:
        alerts = dispatcher.get_alert_history()
    return [a.model_dump(mode="json") for a in alerts]


@router.post("/api/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(request: Request, alert_id: str, by: str = "api") -> dict:
    ok = request.app.state.dispatcher.acknowledge_alert(alert_id, by)
    if not ok:
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"acknowledged": True}


# ── security ──────────────────────────────────────────


@router.get("/api/security/report")
async def get_security_report(request: Request, hours: float = 24) -> dict:
    try:
        report = await request.app.state.intrusion.generate_security_report(hours)
    except TransientIOError as exc:
        logger.error("Security report unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Security event store unavailable") from exc
    return report.model_dump(mode="json")


@router.get("/api/status")
async def get_status(request: Request) -> dict:
    state = request.app.state
    return {
        "status": "running",
        "metrics_collecting": state.metrics.collecting,
        "health_checks_running": state.health.running,
        "rule_evaluation_running": state.dispatcher.evaluating,
        "last_health_status": state.health.last_status.value,
        "channels": sorted(state.dispatcher.channels),
        "rules": [r.name for r in state.dispatcher.get_rules()],
        "health_components": state.health.components,
        "websocket_clients": len(ws_manager.active_connections),
    }


# ── WebSocket endpoint ────────────────────────────────


@router.websocket("/ws/alerts")
async def websocket_alerts(websocket: WebSocket) -> None:
    await ws_manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket)
