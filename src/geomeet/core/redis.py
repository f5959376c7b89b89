"""Redis client behind the cross-process bucket locks.

Redis holds no meeting data; it only stores the short-lived lock keys
written by RedisBucketLock. The readiness check pings it through
:func:`ping_lock_store` when the redis lock backend is selected.
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.geomeet.config import get_settings

_lock_client: aioredis.Redis | None = None


def get_lock_client() -> aioredis.Redis:
    """Shared client for lock keys, created on first use.

    Connects lazily; a connect that takes longer than the lock wait time
    fails the lock acquisition instead of hanging the request.
    """
    global _lock_client
    if _lock_client is None:
        settings = get_settings()
        _lock_client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=settings.LOCK_TIMEOUT_SECONDS,
        )
    return _lock_client


async def ping_lock_store() -> str | None:
    """Return None when Redis answers PING, else a short error description."""
    try:
        pong = await get_lock_client().ping()
    except (RedisError, OSError) as exc:
        return str(exc) or exc.__class__.__name__
    if not pong:
        return "PING did not return PONG"
    return None


async def close_lock_client() -> None:
    global _lock_client
    if _lock_client is not None:
        await _lock_client.aclose()
        _lock_client = None
