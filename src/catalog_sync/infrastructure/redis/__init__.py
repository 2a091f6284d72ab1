"""Redis-backed key-value store for session status, leases and flags."""

from typing import Any

import orjson
import redis.asyncio as aioredis
import structlog

from catalog_sync.config import get_settings

logger = structlog.get_logger()

_redis_client: aioredis.Redis | None = None

# Compare-and-delete, so only the current owner removes a key
_DELETE_IF_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


def create_redis_client() -> aioredis.Redis:
    """Create a new async Redis client from settings."""
    settings = get_settings()
    return aioredis.from_url(
        settings.redis_url,
        decode_responses=False,
        socket_connect_timeout=2,
        socket_timeout=5,
        retry_on_timeout=True,
    )


def get_redis_client() -> aioredis.Redis:
    """Get or create the global async Redis client (API process)."""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis_client()
        logger.info("Redis client created")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class RedisKeyValueStore:
    """Async Redis key-value store with orjson serialization.

    Unlike a cache, this store does not degrade silently: session state
    must be durable, so Redis errors propagate to the caller.
    """

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def get(self, key: str, default: Any = None) -> Any:
        data = await self.client.get(key)
        if data is None:
            return default
        return orjson.loads(data)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self.client.set(key, orjson.dumps(value), ex=ttl_seconds or None)

    async def add(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        created = await self.client.set(key, orjson.dumps(value), ex=ttl_seconds or None, nx=True)
        return bool(created)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.client.delete(*keys)

    async def delete_if(self, key: str, value: Any) -> bool:
        deleted = await self.client.eval(_DELETE_IF_SCRIPT, 1, key, orjson.dumps(value))
        return bool(deleted)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning("Redis ping failed", error=str(e))
            return False
