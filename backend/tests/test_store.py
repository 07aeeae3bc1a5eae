"""
Unit tests for the artifact store: TTLs, chunking and redis demotion.
"""
import asyncio

import pytest

from contact_converter.exceptions import StoreUnavailableError
from contact_converter.services.store import (
    CHUNK_SIZE,
    ArtifactStore,
    MemoryBackend,
    run_sweeper,
)


class FlakyRemote:
    """Stands in for RedisBackend; fails every call once ``down`` is set."""

    name = "redis"

    def __init__(self):
        self.data = {}
        self.down = False
        self.closed = False

    def _check(self):
        if self.down:
            raise StoreUnavailableError("connection refused")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ttl_seconds):
        self._check()
        self.data[key] = value

    async def delete(self, *keys):
        self._check()
        for key in keys:
            self.data.pop(key, None)

    async def close(self):
        self.closed = True


class TestMemoryBackend:
    """Test MemoryBackend expiry."""

    async def test_value_visible_before_ttl(self, clock):
        backend = MemoryBackend(clock=clock)
        await backend.set("k", "v", 60)
        clock.advance(59)
        assert await backend.get("k") == "v"

    async def test_value_gone_at_ttl(self, clock):
        backend = MemoryBackend(clock=clock)
        await backend.set("k", "v", 60)
        clock.advance(60)
        assert await backend.get("k") is None

    async def test_sweep_removes_expired_only(self, clock):
        backend = MemoryBackend(clock=clock)
        await backend.set("short", "v", 10)
        await backend.set("long", "v", 100)
        clock.advance(50)
        assert backend.sweep() == 1
        assert len(backend) == 1


class TestArtifactStore:
    """Test ArtifactStore get/set/delete contract."""

    async def test_round_trip(self, store):
        await store.set("k", {"a": [1, 2]}, 60)
        assert await store.get("k") == {"a": [1, 2]}

    async def test_missing_key(self, store):
        assert await store.get("nope") is None

    async def test_expiry(self, store, clock):
        await store.set("k", "v", 60)
        clock.advance(61)
        assert await store.get("k") is None

    async def test_overwrite_refreshes_ttl(self, store, clock):
        await store.set("k", "v1", 60)
        clock.advance(50)
        await store.set("k", "v2", 60)
        clock.advance(50)
        assert await store.get("k") == "v2"

    async def test_delete_missing_is_noop(self, store):
        await store.delete("nope")

    async def test_backend_name(self, store):
        assert store.backend_name == "memory"

    # Chunking
    async def test_large_value_is_chunked(self, store):
        value = "x" * (CHUNK_SIZE * 2 + 10)
        await store.set("big", value, 60)
        assert await store.memory.get("big:meta") is not None
        assert await store.memory.get("big") is None
        assert await store.get("big") == value

    async def test_delete_removes_chunks(self, store):
        await store.set("big", "x" * (CHUNK_SIZE + 1), 60)
        await store.delete("big")
        assert len(store.memory) == 0
        assert await store.get("big") is None

    async def test_missing_chunk_reads_as_expired(self, store):
        await store.set("big", "x" * (CHUNK_SIZE + 1), 60)
        await store.memory.delete("big:chunk:1")
        assert await store.get("big") is None

    async def test_small_value_replaces_chunked_one(self, store):
        await store.set("k", "x" * (CHUNK_SIZE + 1), 60)
        await store.set("k", "small", 60)
        assert await store.get("k") == "small"
        assert await store.memory.get("k:meta") is None

    async def test_sweep(self, store, clock):
        await store.set("k", "v", 10)
        clock.advance(11)
        assert store.sweep() == 1


class TestRedisDemotion:
    """Test falling back to memory when redis goes away."""

    async def test_writes_go_to_remote(self, clock):
        remote = FlakyRemote()
        store = ArtifactStore(memory=MemoryBackend(clock=clock), remote=remote)
        await store.set("k", "v", 60)
        assert "k" in remote.data
        assert store.backend_name == "redis"

    async def test_failed_write_demotes_and_lands_in_memory(self, clock):
        remote = FlakyRemote()
        remote.down = True
        store = ArtifactStore(memory=MemoryBackend(clock=clock), remote=remote)
        await store.set("k", "v", 60)
        assert store.backend_name == "memory"
        assert await store.get("k") == "v"

    async def test_failed_read_demotes(self, clock):
        remote = FlakyRemote()
        store = ArtifactStore(memory=MemoryBackend(clock=clock), remote=remote)
        await store.set("k", "v", 60)
        remote.down = True
        assert await store.get("k") is None
        assert store.remote is None

    async def test_create_without_url_uses_memory(self):
        store = await ArtifactStore.create("")
        assert store.backend_name == "memory"

    async def test_create_with_unreachable_redis_uses_memory(self):
        store = await ArtifactStore.create("redis://127.0.0.1:1/0")
        assert store.backend_name == "memory"

    async def test_close_closes_remote(self, clock):
        remote = FlakyRemote()
        store = ArtifactStore(memory=MemoryBackend(clock=clock), remote=remote)
        await store.close()
        assert remote.closed


class TestRunSweeper:
    """Test the background sweeper task."""

    async def test_sweeps_until_cancelled(self, store, clock):
        await store.set("k", "v", 1)
        clock.advance(2)
        task = asyncio.create_task(run_sweeper(store, interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(store.memory) == 0
