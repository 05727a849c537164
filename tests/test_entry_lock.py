"""Tests for per-entry locking."""

import asyncio

import pytest
import redis.asyncio as redis

from price_ingest.config import settings
from price_ingest.worker.entry_lock import EntryLockManager, LockTimeoutError


async def _redis_available() -> bool:
    try:
        client = await redis.from_url(settings.redis_url, decode_responses=True)
        await client.ping()
        await client.close()
        return True
    except Exception:
        return False


async def _critical_section(manager, entry_id, log, name):
    async with manager.hold(entry_id):
        log.append(f"{name}:enter")
        await asyncio.sleep(0.01)
        log.append(f"{name}:exit")


@pytest.mark.asyncio
async def test_local_lock_serializes_same_entry():
    manager = EntryLockManager(backend="local", wait_seconds=5)
    log = []

    await asyncio.gather(
        _critical_section(manager, 1, log, "a"),
        _critical_section(manager, 1, log, "b"),
    )

    assert log in (
        ["a:enter", "a:exit", "b:enter", "b:exit"],
        ["b:enter", "b:exit", "a:enter", "a:exit"],
    )


@pytest.mark.asyncio
async def test_local_lock_allows_different_entries():
    manager = EntryLockManager(backend="local", wait_seconds=5)
    log = []

    await asyncio.gather(
        _critical_section(manager, 1, log, "a"),
        _critical_section(manager, 2, log, "b"),
    )

    assert set(log[:2]) == {"a:enter", "b:enter"}


@pytest.mark.asyncio
async def test_local_lock_released_on_error():
    manager = EntryLockManager(backend="local", wait_seconds=1)

    with pytest.raises(ValueError):
        async with manager.hold(7):
            raise ValueError("boom")

    async with manager.hold(7):
        pass
    assert manager._local_locks == {}


@pytest.mark.asyncio
async def test_local_lock_times_out():
    manager = EntryLockManager(backend="local", wait_seconds=0.05)

    async with manager.hold(3):
        with pytest.raises(LockTimeoutError):
            async with manager.hold(3):
                pass


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        EntryLockManager(backend="zookeeper")


@pytest.mark.asyncio
async def test_redis_lock_acquire_release():
    if not await _redis_available():
        pytest.skip("Redis not available")

    manager = EntryLockManager(backend="redis", redis_url=settings.redis_url, ttl_seconds=5, wait_seconds=0.2)
    try:
        async with manager.hold(42):
            with pytest.raises(LockTimeoutError):
                async with manager.hold(42):
                    pass

        async with manager.hold(42):
            pass
    finally:
        await manager.close()
