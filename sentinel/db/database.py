from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from sentinel.errors import TransientIOError
from sentinel.models.security import RiskLevel, SecurityEvent

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).with_name("schema.sql")

HIGH_RISK_LEVELS = (RiskLevel.HIGH.value, RiskLevel.CRITICAL.value)


class SecurityEventStore:
    """Append-only log of security events and alerts in SQLite.

    Every call opens its own connection, so the store is safe to share
    between the request path and background tasks. Driver and filesystem
    failures surface as ``TransientIOError``.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)

    async def init(self) -> None:
        """Create tables if they don't exist."""
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            schema = _SCHEMA_PATH.read_text()
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.executescript(schema)
                await db.commit()
        except (aiosqlite.Error, OSError) as exc:
            raise TransientIOError(f"security store unavailable: {exc}") from exc
        logger.info("Security event store ready at %s", self.db_path)

    # ── writes ──────────────────────────────────────────

    async def insert_event(self, event: SecurityEvent) -> int:
        return await self._write(
            """INSERT INTO security_events (event_type, details, risk_level, created_at)
               VALUES (?, ?, ?, ?)""",
            (
                event.event_type.value,
                json.dumps(event.details, default=str),
                event.risk_level.value,
                _iso(event.created_at),
            ),
        )

    async def insert_alert(self, alert_type: str, details: dict[str, Any]) -> int:
        return await self._write(
            "INSERT INTO security_alerts (alert_type, details, created_at) VALUES (?, ?, ?)",
            (alert_type, json.dumps(details, default=str), _iso(datetime.now(timezone.utc))),
        )

    async def _write(self, sql: str, params: tuple) -> int:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(sql, params)
                await db.commit()
                return cursor.lastrowid
        except aiosqlite.Error as exc:
            raise TransientIOError(f"security store unavailable: {exc}") from exc

    # ── queries ─────────────────────────────────────────

    async def count_actor_events(self, actor_id: str, since: datetime) -> dict[str, int]:
        """Events per type attributed to ``actor_id`` since ``since``."""
        rows = await self._fetch(
            """SELECT event_type, COUNT(*) AS count FROM security_events
               WHERE json_extract(details, '$.actor_id') = ? AND created_at > ?
               GROUP BY event_type""",
            (actor_id, _iso(since)),
        )
        return {r["event_type"]: r["count"] for r in rows}

    async def event_breakdown(self, since: datetime) -> list[dict]:
        return await self._fetch(
            """SELECT event_type, risk_level, COUNT(*) AS count FROM security_events
               WHERE created_at > ?
               GROUP BY event_type, risk_level
               ORDER BY count DESC""",
            (_iso(since),),
        )

    async def high_risk_events(self, since: datetime, limit: int = 100) -> list[dict]:
        return await self._fetch(
            """SELECT * FROM security_events
               WHERE created_at > ? AND risk_level IN (?, ?)
               ORDER BY created_at DESC
               LIMIT ?""",
            (_iso(since), *HIGH_RISK_LEVELS, limit),
        )

    async def distinct_ips(self, since: datetime) -> int:
        return await self._distinct("$.ip", since)

    async def distinct_actors(self, since: datetime) -> int:
        return await self._distinct("$.actor_id", since)

    async def get_alerts(self, limit: int = 50) -> list[dict]:
        return await self._fetch(
            "SELECT * FROM security_alerts ORDER BY created_at DESC LIMIT ?", (limit,)
        )

    async def ping(self) -> bool:
        await self._fetch("SELECT 1 AS ok", ())
        return True

    async def _distinct(self, json_path: str, since: datetime) -> int:
        rows = await self._fetch(
            """SELECT COUNT(DISTINCT json_extract(details, ?)) AS n FROM security_events
               WHERE created_at > ?""",
            (json_path, _iso(since)),
        )
        return rows[0]["n"] if rows else 0

    async def _fetch(self, sql: str, params: tuple) -> list[dict]:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
                return [_row_to_dict(r) for r in rows]
        except aiosqlite.Error as exc:
            raise TransientIOError(f"security store unavailable: {exc}") from exc


# ── helpers ─────────────────────────────────────────────

def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _row_to_dict(row: aiosqlite.Row) -> dict:
    d = dict(row)
    if "details" in d and isinstance(d["details"], str):
        d["details"] = json.loads(d["details"])
    return d
