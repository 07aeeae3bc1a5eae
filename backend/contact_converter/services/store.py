"""
TTL-bounded key-value store shared by the conversation layer and the
download endpoint.

Values are JSON-serialisable objects. Anything larger than 512 KiB once
serialised is split into chunks:

    <key>:chunk:0 .. <key>:chunk:N-1   raw string slices
    <key>:meta                         {"chunked": true, "chunk_count": N, "total": size}

Redis is used when ``REDIS_URL`` is set. The first connection failure
demotes the store to the in-process backend for the rest of the process
lifetime; callers never see the failure.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..exceptions import StoreUnavailableError
from ..logging_config import log_action

logger = logging.getLogger(__name__)

CHUNK_SIZE = 512 * 1024
SWEEP_INTERVAL_SECONDS = 30 * 60
REDIS_CONNECT_TIMEOUT = 15


# =========================================================================
# Backends
# =========================================================================

class MemoryBackend:
    """
    In-process dict with per-key expiry.

    Expired keys are hidden on read and reaped by ``sweep()``. The clock
    is injectable so tests can move time forward.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._data)

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired key; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]
        return len(expired)

    async def close(self) -> None:
        self._data.clear()


class RedisBackend:
    """redis.asyncio wrapper that reports connection trouble as StoreUnavailableError."""

    name = "redis"

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self.url = url
        self._client = client

    async def connect(self) -> None:
        try:
            if self._client is None:
                self._client = redis.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=REDIS_CONNECT_TIMEOUT,
                )
            await self._client.ping()
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            raise StoreUnavailableError(f"cannot reach redis: {e}") from e
        logger.info("Connected to Redis")

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(str(e)) from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(str(e)) from e

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*keys)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(str(e)) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")


# =========================================================================
# Store
# =========================================================================

def _meta_key(key: str) -> str:
    return f"{key}:meta"


def _chunk_key(key: str, index: int) -> str:
    return f"{key}:chunk:{index}"


class ArtifactStore:
    """
    Keyed JSON store with TTL, transparent chunking and redis demotion.

    Reads check memory first, then redis. Writes go to redis while it is
    available and to memory otherwise. Deletes clear both.
    """

    def __init__(self, memory: Optional[MemoryBackend] = None, remote: Optional[RedisBackend] = None):
        self.memory = memory or MemoryBackend()
        self.remote = remote

    @classmethod
    async def create(cls, redis_url: str = "", clock: Callable[[], float] = time.monotonic) -> "ArtifactStore":
        """
        Build a store, connecting to redis when a URL is given.

        A failed connection is logged and the store starts in memory mode.
        """
        store = cls(memory=MemoryBackend(clock=clock))
        if redis_url:
            remote = RedisBackend(redis_url)
            try:
                await remote.connect()
                store.remote = remote
            except StoreUnavailableError as e:
                store._demote(e)
        else:
            logger.info("REDIS_URL not set, using in-memory store")
        return store

    @property
    def backend_name(self) -> str:
        return self.remote.name if self.remote else self.memory.name

    def _demote(self, error: Exception) -> None:
        log_action(
            logger, "warning", "store_demoted",
            f"Redis unavailable, using in-memory store: {error}",
        )
        self.remote = None

    # -- raw access with demotion -------------------------------------------------

    async def _raw_get(self, key: str) -> Optional[str]:
        value = await self.memory.get(key)
        if value is not None or self.remote is None:
            return value
        try:
            return await self.remote.get(key)
        except StoreUnavailableError as e:
            self._demote(e)
            return None

    async def _raw_set(self, items: List[Tuple[str, str]], ttl_seconds: int) -> None:
        if self.remote is not None:
            try:
                for key, value in items:
                    await self.remote.set(key, value, ttl_seconds)
                return
            except StoreUnavailableError as e:
                self._demote(e)
        for key, value in items:
            await self.memory.set(key, value, ttl_seconds)

    async def _raw_delete(self, *keys: str) -> None:
        await self.memory.delete(*keys)
        if self.remote is not None:
            try:
                await self.remote.delete(*keys)
            except StoreUnavailableError as e:
                self._demote(e)

    # -- public contract ---------------------------------------------------------

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """
        Store ``value`` under ``key`` for ``ttl_seconds``.

        Args:
            key: Store key, e.g. ``file:<uuid>``
            value: Any JSON-serialisable object
            ttl_seconds: Lifetime in seconds
        """
        payload = json.dumps(value)
        if len(payload) <= CHUNK_SIZE:
            await self._raw_set([(key, payload)], ttl_seconds)
            # An earlier chunked value under the same key must not shadow this one
            await self._raw_delete(_meta_key(key))
            return

        chunks = [payload[i:i + CHUNK_SIZE] for i in range(0, len(payload), CHUNK_SIZE)]
        items = [(_chunk_key(key, i), chunk) for i, chunk in enumerate(chunks)]
        meta = {"chunked": True, "chunk_count": len(chunks), "total": len(payload)}
        # Meta goes last so a reader never sees a partial value
        items.append((_meta_key(key), json.dumps(meta)))
        await self._raw_delete(key)
        await self._raw_set(items, ttl_seconds)
        logger.debug(f"Stored {key} in {len(chunks)} chunks ({len(payload)} chars)")

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if it is missing or expired."""
        raw = await self._raw_get(key)
        if raw is not None:
            return json.loads(raw)

        meta_raw = await self._raw_get(_meta_key(key))
        if meta_raw is None:
            return None
        meta = json.loads(meta_raw)

        parts: List[str] = []
        for i in range(int(meta.get("chunk_count", 0))):
            chunk = await self._raw_get(_chunk_key(key, i))
            if chunk is None:
                logger.warning(f"Chunk {i} of {key} missing, treating value as expired")
                return None
            parts.append(chunk)
        payload = "".join(parts)
        if len(payload) != meta.get("total", len(payload)):
            logger.warning(f"Reassembled {key} has wrong length, treating value as expired")
            return None
        return json.loads(payload)

    async def delete(self, key: str) -> None:
        """Remove ``key`` and any chunks; deleting a missing key is a no-op."""
        keys = [key]
        meta_raw = await self._raw_get(_meta_key(key))
        if meta_raw is not None:
            meta = json.loads(meta_raw)
            keys.append(_meta_key(key))
            keys.extend(_chunk_key(key, i) for i in range(int(meta.get("chunk_count", 0))))
        await self._raw_delete(*keys)

    def sweep(self) -> int:
        removed = self.memory.sweep()
        if removed:
            logger.info(f"Swept {removed} expired keys from memory store")
        return removed

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
            self.remote = None


async def run_sweeper(store: ArtifactStore, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
    """Periodically reap expired in-memory keys until cancelled."""
    while True:
        await asyncio.sleep(interval)
        store.sweep()
