"""Key-value stores backing model distribution state."""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal JSON-value store with per-key TTLs."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def close(self) -> None:
        return None


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store shared by all Celery workers.

    Redis failures are logged and treated as a cache miss: distribution is a
    load-balancing heuristic and must not fail the task that asked for a model.
    """

    def __init__(self, redis_url: str, key_prefix: str = "bvt:"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis: redis.Redis | None = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        return self._redis

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = await self._client().get(self.key_prefix + key)
        except RedisError as e:
            logger.warning("Redis GET %s failed: %s", key, e)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable value at %s", key)
            return default

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._client().setex(self.key_prefix + key, ttl_seconds, json.dumps(value))
        except RedisError as e:
            logger.warning("Redis SETEX %s failed: %s", key, e)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store for tests and single-process runs."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        entry = self._data.get(key)
        if entry is None:
            return default
        raw, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return default
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        # Stored as JSON so both stores hand back equal copies (string keys included)
        self._data[key] = (json.dumps(value), self._clock() + ttl_seconds)
