"""
Key-value store adapters.

Every persisted record (current CI snapshot, daily snapshots, date index, the
issue/PR mirror, bus-factor cache) lives under a single key as a JSON document
with an optional time-to-live. Redis is the production backend; the in-memory
store backs local development and the test-suite.
"""

import json
import logging
import time
from typing import Any, Callable, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Storage backend protocol."""

    async def get_text(self, key: str) -> str | None:
        """Return the raw stored document, or None when missing/expired."""
        ...

    async def get(self, key: str) -> Any | None:
        """Return the decoded JSON document, or None when missing/expired."""
        ...

    async def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        """JSON-encode and store a value, expiring after ttl seconds if given."""
        ...

    async def delete(self, key: str) -> None:
        ...

    async def ping(self) -> bool:
        ...

    async def aclose(self) -> None:
        ...


def _decode(key: str, raw: str | None) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Corrupted JSON under key %s, treating as missing", key)
        return None


class RedisKeyValueStore:
    def __init__(self, url: str):
        self.url = url
        self._redis: aioredis.Redis = aioredis.from_url(url, decode_responses=True)

    async def get_text(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def get(self, key: str) -> Any | None:
        return _decode(key, await self.get_text(key))

    async def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self._redis.set(key, json.dumps(value, default=str), ex=ttl)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except Exception as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def aclose(self) -> None:
        await self._redis.aclose()


class InMemoryKeyValueStore:
    """Process-local store with the same TTL semantics as Redis."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return raw

    async def get_text(self, key: str) -> str | None:
        return self._live(key)

    async def get(self, key: str) -> Any | None:
        return _decode(key, self._live(key))

    async def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (json.dumps(value, default=str), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    def keys(self) -> list[str]:
        return [k for k in list(self._data) if self._live(k) is not None]

    def ttl(self, key: str) -> float | None:
        entry = self._data.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self._clock()


def create_store(backend: str, redis_url: str) -> KeyValueStore:
    """Factory: creates the configured key-value backend."""
    if backend == "memory":
        logger.info("Using in-memory key-value store")
        return InMemoryKeyValueStore()
    logger.info("Using Redis key-value store at %s", redis_url)
    return RedisKeyValueStore(redis_url)
