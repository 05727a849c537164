"""Per-catalog-entry locks for the best-price read-modify-write."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional
from uuid import uuid4

import redis.asyncio as redis

from price_ingest.config import settings

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "catalog:entry:lock:"

# Delete only if we still own the key
RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class LockTimeoutError(Exception):
    """The entry lock could not be acquired within the wait budget."""

    pass


class EntryLockManager:
    """
    Scoped mutual exclusion per catalog entry id.
    
    Backends:
    - "redis": SET NX EX with a random token; release is token-checked so an
      expired holder cannot free someone else's lock. Works across processes.
    - "local": one asyncio.Lock per entry id. Enough for a single process.
    
    Usage:
        async with entry_locks.hold(entry.id):
            ... re-read, compare, write ...
    """

    def __init__(
        self,
        backend: Optional[str] = None,
        redis_url: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        wait_seconds: Optional[float] = None,
    ):
        self.backend = backend or settings.entry_lock_backend
        if self.backend not in ("redis", "local"):
            raise ValueError(f"Unknown entry lock backend: {self.backend}")
        self.redis_url = redis_url or settings.redis_url
        self.ttl_seconds = ttl_seconds or settings.entry_lock_ttl_seconds
        self.wait_seconds = wait_seconds if wait_seconds is not None else settings.entry_lock_wait_seconds
        self._redis: Optional[redis.Redis] = None
        self._local_locks: Dict[int, asyncio.Lock] = {}
        self._local_waiters: Dict[int, int] = {}

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None

    @asynccontextmanager
    async def hold(self, entry_id: int) -> AsyncIterator[None]:
        """Hold the lock for one entry for the duration of the block."""
        if self.backend == "redis":
            async with self._hold_redis(entry_id):
                yield
        else:
            async with self._hold_local(entry_id):
                yield

    @asynccontextmanager
    async def _hold_local(self, entry_id: int) -> AsyncIterator[None]:
        lock = self._local_locks.setdefault(entry_id, asyncio.Lock())
        self._local_waiters[entry_id] = self._local_waiters.get(entry_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
            except asyncio.TimeoutError as e:
                raise LockTimeoutError(f"Timed out waiting for entry {entry_id} lock") from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._local_waiters[entry_id] -= 1
            if self._local_waiters[entry_id] == 0:
                # Nobody else references this lock; drop it so the map stays small
                del self._local_waiters[entry_id]
                self._local_locks.pop(entry_id, None)

    @asynccontextmanager
    async def _hold_redis(self, entry_id: int) -> AsyncIterator[None]:
        redis_client = await self._get_redis()
        key = f"{LOCK_KEY_PREFIX}{entry_id}"
        token = uuid4().hex
        deadline = time.monotonic() + self.wait_seconds
        delay = 0.05

        while True:
            acquired = await redis_client.set(key, token, nx=True, ex=self.ttl_seconds)
            if acquired:
                break
            if time.monotonic() >= deadline:
                raise LockTimeoutError(f"Timed out waiting for entry {entry_id} lock")
            await asyncio.sleep(delay)
            delay = min(delay * 2, 0.5)

        try:
            yield
        finally:
            try:
                released = await redis_client.eval(RELEASE_SCRIPT, 1, key, token)
                if not released:
                    logger.warning(f"Entry {entry_id} lock expired before release")
            except redis.RedisError as e:
                # The TTL frees it eventually
                logger.error(f"Failed to release entry {entry_id} lock: {e}")


# Global entry lock manager
entry_locks = EntryLockManager()
