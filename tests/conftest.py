"""Shared fixtures: an in-memory async Redis double, recording channels, temp stores."""

from __future__ import annotations

import fnmatch
import math
from pathlib import Path

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sentinel.config import AlertSettings
from sentinel.db.database import SecurityEventStore
from sentinel.engine.alert_dispatcher import AlertDispatcher
from sentinel.engine.channels import AlertChannel
from sentinel.models import Alert


# ── Redis double ───────────────────────────────────────


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the rate limiter.

    Time is driven by ``advance()`` rather than the wall clock so window
    expiry can be tested without sleeping.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.fail = False
        self._data: dict[str, int] = {}
        self._expires: dict[str, float] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def set_raw(self, key: str, value: int) -> None:
        """Write a counter with no expiry, as a crashed writer might leave it."""
        self._data[key] = value
        self._expires.pop(key, None)

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    def _purge(self, key: str) -> None:
        expires = self._expires.get(key)
        if expires is not None and expires <= self.now:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    async def get(self, key: str) -> bytes | None:
        self._check()
        self._purge(key)
        value = self._data.get(key)
        return None if value is None else str(value).encode()

    async def ttl(self, key: str) -> int:
        self._check()
        self._purge(key)
        if key not in self._data:
            return -2
        if key not in self._expires:
            return -1
        return math.ceil(self._expires[key] - self.now)

    async def incr(self, key: str) -> int:
        self._check()
        self._purge(key)
        self._data[key] = self._data.get(key, 0) + 1
        return self._data[key]

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        self._check()
        self._purge(key)
        if key not in self._data:
            return False
        if nx and key in self._expires:
            return False
        self._expires[key] = self.now + seconds
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self._data:
                del self._data[key]
                self._expires.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*"):
        self._check()
        for key in list(self._data):
            self._purge(key)
            if key in self._data and fnmatch.fnmatch(key, match):
                yield key

    async def ping(self) -> bool:
        self._check()
        return True

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    def keys_snapshot(self) -> dict[str, int]:
        for key in list(self._data):
            self._purge(key)
        return dict(self._data)


class FakePipeline:
    """Buffers commands and runs them back-to-back on ``execute()``."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._commands: list[tuple[str, tuple, dict]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc) -> None:
        self._commands.clear()

    def __getattr__(self, name: str):
        def queue(*args, **kwargs):
            self._commands.append((name, args, kwargs))
            return self

        return queue

    async def execute(self) -> list:
        results = []
        for name, args, kwargs in self._commands:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._commands.clear()
        return results


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# ── alerting ───────────────────────────────────────────


class RecordingChannel(AlertChannel):
    name = "recording"

    def __init__(self) -> None:
        self.sent: list[Alert] = []

    async def send(self, alert: Alert) -> bool:
        self.sent.append(alert)
        return True


class FailingChannel(AlertChannel):
    name = "failing"

    def __init__(self) -> None:
        self.calls = 0

    async def send(self, alert: Alert) -> bool:
        self.calls += 1
        raise RuntimeError("sink is down")


@pytest.fixture
def recorder() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def failing() -> FailingChannel:
    return FailingChannel()


@pytest.fixture
async def dispatcher(recorder: RecordingChannel):
    d = AlertDispatcher(AlertSettings(channels=[]))
    d.register_channel("recording", recorder)
    yield d
    await d.shutdown()


# ── storage ────────────────────────────────────────────


@pytest.fixture
async def store(tmp_path: Path) -> SecurityEventStore:
    s = SecurityEventStore(tmp_path / "security.db")
    await s.init()
    return s
