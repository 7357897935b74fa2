"""
CanteenGo — Redis client singleton (change feed, idempotency cache, locks)
"""
import uuid

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from canteengo.core.config import get_settings

settings = get_settings()
_redis_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.HEALTH_CHECK_TIMEOUT,
        )
    return _redis_client


async def acquire_lock(redis: aioredis.Redis, key: str, ttl_seconds: int) -> str | None:
    """SET NX EX with a fresh token. Returns the token, or None if the key is held."""
    token = str(uuid.uuid4())
    if await redis.set(key, token, nx=True, ex=ttl_seconds):
        return token
    return None


async def release_lock(redis: aioredis.Redis, key: str, token: str) -> bool:
    """
    Delete `key` only while it still holds `token`. A lock that expired and
    was taken by another request is left alone.
    """
    async with redis.pipeline(transaction=True) as pipe:
        try:
            await pipe.watch(key)
            if await pipe.get(key) != token:
                return False
            pipe.multi()
            pipe.delete(key)
            await pipe.execute()
            return True
        except WatchError:
            # Key changed between GET and DEL: it is no longer ours
            return False


async def close_redis():
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
