import json
import logging
import os
import time
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("PORTAL_REDIS_URL", "redis://localhost:6379/0").strip()
RETRY_AFTER_SEC = int(os.getenv("PORTAL_REDIS_RETRY_AFTER_SEC", "30"))


class CacheClient:
    """Optional Redis cache.

    Every operation is best-effort: when Redis is unreachable the call returns
    as a cache miss and the client stays quiet for ``RETRY_AFTER_SEC``.
    An empty URL disables caching entirely.
    """

    def __init__(self, url: str = REDIS_URL) -> None:
        self._url = url
        self._redis: redis.Redis | None = None
        self._down_until = 0.0
        self._logged_failure = False

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    @property
    def available(self) -> bool:
        return self.enabled and time.monotonic() >= self._down_until

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self._url,
                decode_responses=True,
                socket_connect_timeout=1,
                socket_timeout=1,
            )
        return self._redis

    def _mark_down(self, exc: Exception) -> None:
        self._down_until = time.monotonic() + RETRY_AFTER_SEC
        if not self._logged_failure:
            self._logged_failure = True
            logger.warning("Redis not available - caching disabled (%s)", exc)
        else:
            logger.debug("Redis still unavailable: %s", exc)

    async def get_json(self, key: str) -> Any | None:
        if not self.available:
            return None
        try:
            data = await self._client().get(key)
        except (RedisError, OSError, ValueError) as exc:
            self._mark_down(exc)
            return None
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            return None

    async def set_json(self, key: str, value: Any, ttl_sec: int = 3600) -> None:
        if not self.available:
            return
        try:
            await self._client().setex(key, ttl_sec, json.dumps(value))
        except (RedisError, OSError, ValueError) as exc:
            self._mark_down(exc)

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching ``pattern`` using SCAN, never KEYS."""
        if not self.available:
            return 0
        try:
            client = self._client()
            keys = [key async for key in client.scan_iter(match=pattern, count=100)]
            if keys:
                await client.delete(*keys)
        except (RedisError, OSError, ValueError) as exc:
            self._mark_down(exc)
            return 0
        return len(keys)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


cache = CacheClient()
