"""Bucket locks held across a conflict check and the write that follows it.

A candidate meeting locks every grid cell its conflict circle touches
(see :func:`src.geomeet.meetings.geo.lock_cells`). Any two candidates close
enough to conflict share a cell, so their check-and-write sections run one
after the other instead of both observing an empty conflict set.

Two backends:
- RedisBucketLock: redis-py locks, safe across processes and hosts
- LocalBucketLock: asyncio locks, for a single process and for tests

Keys are always acquired in sorted order so overlapping key sets cannot
deadlock.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from typing import Protocol

import redis.asyncio as aioredis
import structlog
from redis.asyncio.lock import Lock as RedisLock
from redis.exceptions import LockError

from src.geomeet.meetings.errors import LockUnavailableError
from src.geomeet.meetings.geo import lock_cells
from src.geomeet.meetings.schemas import GeoPoint

logger = structlog.get_logger(__name__)

KEY_PREFIX = "meeting-bucket:"


def bucket_keys(center: GeoPoint, radius_meters: float, step_degrees: float) -> list[str]:
    """Lock names for a candidate at ``center`` with the given conflict radius."""
    return [KEY_PREFIX + cell for cell in lock_cells(center, radius_meters, step_degrees)]


class BucketLock(Protocol):
    def hold(self, keys: Sequence[str]) -> AbstractAsyncContextManager[None]: ...


class LocalBucketLock:
    """In-process bucket lock backed by one asyncio.Lock per key.

    Args:
        timeout_seconds: How long to wait for each key before giving up.
    """

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self._timeout = timeout_seconds
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, keys: Sequence[str]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self._timeout)
                except asyncio.TimeoutError as exc:
                    raise LockUnavailableError(
                        f"Timed out waiting for bucket {key}"
                    ) from exc
                stack.callback(lock.release)
            yield


class RedisBucketLock:
    """Cross-process bucket lock backed by redis-py ``Lock`` objects.

    Args:
        redis_client: Shared async Redis client.
        timeout_seconds: How long to wait for each key before giving up.
        ttl_seconds: Expiry of a held key, so a crashed holder cannot
            block a bucket forever.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        timeout_seconds: float = 5.0,
        ttl_seconds: float = 30.0,
    ) -> None:
        self._redis = redis_client
        self._timeout = timeout_seconds
        self._ttl = ttl_seconds

    async def _release(self, lock: RedisLock, key: str) -> None:
        try:
            await lock.release()
        except LockError:
            # Expired before release; the write already happened.
            logger.warning("bucket_lock.expired_before_release", key=key, ttl=self._ttl)

    @asynccontextmanager
    async def hold(self, keys: Sequence[str]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                lock = self._redis.lock(
                    key, timeout=self._ttl, blocking_timeout=self._timeout
                )
                if not await lock.acquire():
                    raise LockUnavailableError(f"Timed out waiting for bucket {key}")
                stack.push_async_callback(self._release, lock, key)
            yield
