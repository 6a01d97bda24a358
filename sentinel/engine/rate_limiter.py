from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from sentinel.errors import ConfigurationError, TransientIOError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RateLimiter:
    """Per-principal request counter held in a shared Redis instance.

    Every increment renews the key's expiry to the full window, so a
    principal that keeps sending requests stays limited until it pauses for
    one whole window. Store failures are raised as ``TransientIOError``;
    callers decide whether to reject the request (fail-closed).
    """

    def __init__(
        self,
        redis: "Redis | None",
        window: int = 60,
        max_requests: int = 60,
        key_prefix: str = "ratelimit:",
    ) -> None:
        if redis is None:
            raise ConfigurationError("RateLimiter requires a Redis connection")
        if window <= 0 or max_requests <= 0:
            raise ConfigurationError("window and max_requests must be positive")
        self._redis = redis
        self.window = int(window)
        self.max_requests = int(max_requests)
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _count(self, key: str) -> int:
        """Read the counter and repair a missing expiry in one transaction."""
        full_key = self._key(key)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.get(full_key)
                pipe.ttl(full_key)
                raw, ttl = await pipe.execute()
            if raw is not None and ttl == -1:
                logger.warning("Rate-limit key %s had no expiry; resetting to %ss", full_key, self.window)
                await self._redis.expire(full_key, self.window, nx=True)
        except RedisError as exc:
            raise TransientIOError(f"rate-limit store unavailable: {exc}") from exc
        return int(raw) if raw is not None else 0

    async def check(self, key: str) -> bool:
        """Return True if ``key`` is over its limit and should be blocked."""
        blocked = await self._count(key) >= self.max_requests
        if blocked:
            logger.info("Rate limit exceeded for %s", key)
        return blocked

    async def increment(self, key: str) -> int:
        """Count one request and renew the window. Returns the new count."""
        full_key = self._key(key)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(full_key)
                pipe.expire(full_key, self.window)
                count, _ = await pipe.execute()
        except RedisError as exc:
            raise TransientIOError(f"rate-limit store unavailable: {exc}") from exc
        return int(count)

    async def get_remaining(self, key: str) -> int:
        return max(0, self.max_requests - await self._count(key))

    async def reset(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except RedisError as exc:
            raise TransientIOError(f"rate-limit store unavailable: {exc}") from exc

    async def cleanup(self) -> int:
        """Delete every counter in this limiter's namespace. Returns the count deleted."""
        deleted = 0
        try:
            async for full_key in self._redis.scan_iter(match=f"{self.key_prefix}*"):
                deleted += await self._redis.delete(full_key)
        except RedisError as exc:
            raise TransientIOError(f"rate-limit store unavailable: {exc}") from exc
        logger.info("Rate-limit cleanup removed %d keys", deleted)
        return deleted

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            raise TransientIOError(f"rate-limit store unavailable: {exc}") from exc
