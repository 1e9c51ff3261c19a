"""
Per-entity mutual exclusion for ledger mutations.

Every check-then-write sequence in the services runs under ``hold(key)`` with
keys such as ``loan:12`` or ``user:3``. The local manager serializes
coroutines of one process; the redis manager extends this across workers.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
import asyncio
import logging

from redis import asyncio as aioredis
from redis.exceptions import LockError

from bitlend.core.config import Settings
from bitlend.core.exceptions import StateError

logger = logging.getLogger(__name__)


def loan_key(loan_id: int) -> str:
    return f"loan:{loan_id}"


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


class LocalLockManager:
    """In-process locks, one asyncio.Lock per key"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                self._locks.pop(key, None)

    async def close(self) -> None:
        self._locks.clear()
        self._holders.clear()


class RedisLockManager:
    """Distributed locks backed by redis, for multi-worker deployments"""

    def __init__(self, redis_url: str, timeout: int = 30):
        self._timeout = timeout
        self._redis = aioredis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=10
        )

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            f"bitlend:lock:{key}",
            timeout=self._timeout,
            blocking_timeout=self._timeout
        )
        if not await lock.acquire():
            raise StateError(f"Could not lock {key}, try again later")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # lock expired before release; another worker may hold it now
                logger.warning(f"Lock {key} expired before it was released")

    async def close(self) -> None:
        await self._redis.aclose()


def build_lock_manager(config: Settings):
    """Create the lock manager selected by LOCK_BACKEND"""
    if config.LOCK_BACKEND == "redis":
        return RedisLockManager(config.REDIS_URL, timeout=config.LOCK_TIMEOUT_SECONDS)
    if config.LOCK_BACKEND != "local":
        raise ValueError(f"Unknown LOCK_BACKEND: {config.LOCK_BACKEND}")
    return LocalLockManager()
