from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sentinel.api.routes import router, ws_manager
from sentinel.config import Settings, load_settings
from sentinel.db.database import SecurityEventStore
from sentinel.engine import (
    AlertDispatcher,
    HealthAggregator,
    IntrusionDetector,
    MetricsRegistry,
    RateLimiter,
)
from sentinel.engine.channels import WebSocketChannel
from sentinel.engine.health_checks import register_default_checks
from sentinel.engine.metrics_registry import default_collectors
from sentinel.errors import TransientIOError
from sentinel.models import RequestSurface, RiskLevel, SecurityEventType, ThreatType

logger = logging.getLogger(__name__)

settings = load_settings()


def configure_logging(cfg: Settings) -> None:
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── startup ───────────────────────────────────────
    configure_logging(settings)

    store = SecurityEventStore(settings.db_path)
    await store.init()

    dispatcher = AlertDispatcher(settings.alert)
    dispatcher.register_channel("websocket", WebSocketChannel(ws_manager.broadcast))

    metrics = MetricsRegistry(
        dispatcher,
        thresholds=settings.thresholds,
        collectors=default_collectors(settings.cpu_probe_seconds, settings.disk_path),
        interval=settings.metrics_interval,
    )
    health = HealthAggregator(
        dispatcher,
        metrics=metrics,
        version=settings.version,
        interval=settings.health_interval,
    )
    redis_client = aioredis.from_url(settings.redis_url) if settings.redis_url else None
    rate_limiter = RateLimiter(
        redis_client,
        window=settings.rate_limiter.window,
        max_requests=settings.rate_limiter.max_requests,
        key_prefix=settings.rate_limiter.key_prefix,
    )
    register_default_checks(health, database_ping=store.ping, limiter_ping=rate_limiter.ping)
    intrusion = IntrusionDetector(store, dispatcher, settings.intrusion)

    await metrics.start_collection()
    await health.start_health_checks()
    await dispatcher.start_rule_evaluation()
    await intrusion.start()

    # Store on app.state for route access
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.metrics = metrics
    app.state.health = health
    app.state.rate_limiter = rate_limiter
    app.state.intrusion = intrusion

    logger.info("%s %s started", settings.app_name, settings.version)

    yield

    # ── shutdown ──────────────────────────────────────
    await intrusion.shutdown()
    await health.shutdown()
    await metrics.shutdown()
    await dispatcher.shutdown()
    await redis_client.aclose()
    logger.info("%s shut down", settings.app_name)


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.middleware("http")
async def request_guard(request: Request, call_next):
    """Count the request, enforce the per-IP rate limit and scan for attack signatures."""
    state = request.app.state
    metrics: MetricsRegistry | None = getattr(state, "metrics", None)
    limiter: RateLimiter | None = getattr(state, "rate_limiter", None)
    intrusion: IntrusionDetector | None = getattr(state, "intrusion", None)
    ip = request.client.host if request.client else "unknown"

    if metrics is not None:
        metrics.request_started()
    try:
        if limiter is not None and request.url.path.startswith("/api/"):
            try:
                if await limiter.check(ip):
                    if intrusion is not None:
                        await intrusion.log_security_event(
                            SecurityEventType.RATE_LIMIT_EXCEEDED,
                            {"ip": ip, "path": request.url.path},
                            RiskLevel.MEDIUM,
                        )
                    return JSONResponse({"detail": "Too many requests"}, status_code=429)
                await limiter.increment(ip)
            except TransientIOError as exc:
                logger.error("Rejecting request, rate limiter unavailable: %s", exc)
                return JSONResponse({"detail": "Service unavailable"}, status_code=503)

        if intrusion is not None:
            analysis = intrusion.analyze_request(
                RequestSurface(
                    path=request.url.path,
                    query=dict(request.query_params),
                    headers=dict(request.headers),
                    ip=ip,
                )
            )
            if analysis.is_threat:
                try:
                    await intrusion.log_security_event(
                        _THREAT_EVENTS[analysis.threat_type],
                        {"ip": ip, "path": request.url.path, "patterns": analysis.matches},
                        analysis.risk_level,
                    )
                except TransientIOError as exc:
                    logger.error("Rejecting request, security event store unavailable: %s", exc)
                    return JSONResponse({"detail": "Service unavailable"}, status_code=503)
                return JSONResponse({"detail": "Request rejected"}, status_code=400)

        return await call_next(request)
    finally:
        if metrics is not None:
            metrics.request_finished()


_THREAT_EVENTS = {
    ThreatType.COMMAND_INJECTION: SecurityEventType.COMMAND_INJECTION_ATTEMPT,
    ThreatType.SQL_INJECTION: SecurityEventType.SQL_INJECTION_ATTEMPT,
    ThreatType.XSS: SecurityEventType.XSS_ATTEMPT,
    ThreatType.PATH_TRAVERSAL: SecurityEventType.PATH_TRAVERSAL_ATTEMPT,
}

app.include_router(router)


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
