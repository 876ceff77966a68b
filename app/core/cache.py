"""
Ephemeral state store.

Typing marks and presence heartbeats never need to survive a restart, so they
live outside the relational database: in Redis when REDIS_URL is configured,
otherwise in an in-process hash store with TTL eviction (single worker only).
"""
import logging
import time
from typing import Dict, Optional

from redis import asyncio as aioredis

from app.config import settings

logger = logging.getLogger(__name__)


class MemoryHashStore:
    """
    Minimal in-process equivalent of the Redis hash commands we use.

    Each key holds a hash of field -> value and an optional expiry applied to
    the whole key, mirroring Redis EXPIRE semantics.
    """

    def __init__(self, clock=time.monotonic):
        self._data: Dict[str, Dict[str, str]] = {}
        self._expires: Dict[str, float] = {}
        self._clock = clock

    def _evict_if_expired(self, key: str) -> None:
        expires_at = self._expires.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    async def hset(self, key: str, field: str, value: str, ttl: Optional[int] = None) -> None:
        self._evict_if_expired(key)
        self._data.setdefault(key, {})[field] = value
        if ttl:
            self._expires[key] = self._clock() + ttl

    async def hget(self, key: str, field: str) -> Optional[str]:
        self._evict_if_expired(key)
        return self._data.get(key, {}).get(field)

    async def hgetall(self, key: str) -> Dict[str, str]:
        self._evict_if_expired(key)
        return dict(self._data.get(key, {}))

    async def hdel(self, key: str, field: str) -> bool:
        self._evict_if_expired(key)
        bucket = self._data.get(key)
        if not bucket or field not in bucket:
            return False
        del bucket[field]
        if not bucket:
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return True

    def clear(self) -> None:
        self._data.clear()
        self._expires.clear()


class RedisCache:
    """Redis-backed hash store with an in-process fallback."""

    def __init__(self):
        """Start on the in-process store until connect() finds Redis."""
        self.redis: Optional[aioredis.Redis] = None
        self.memory = MemoryHashStore()

    @property
    def backend(self) -> str:
        return "redis" if self.redis else "memory"

    async def connect(self) -> None:
        """Establish connection to Redis, or stay on the in-process store."""
        if not settings.redis_url:
            logger.info("No Redis URL provided - using in-process ephemeral store")
            self.redis = None
            return

        try:
            self.redis = aioredis.from_url(
                settings.redis_url,
                password=settings.redis_password or None,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except Exception as e:
            logger.warning(f"Could not connect to Redis ({e}); using in-process ephemeral store")
            self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def hset(self, key: str, field: str, value: str, ttl: Optional[int] = None) -> None:
        """
        Set a hash field, refreshing the key's TTL when given.

        Args:
            key: Hash key
            field: Field name
            value: Field value
            ttl: Key expiry in seconds
        """
        if not self.redis:
            await self.memory.hset(key, field, value, ttl)
            return

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(key, field, value)
            if ttl:
                pipe.expire(key, ttl)
            await pipe.execute()

    async def hget(self, key: str, field: str) -> Optional[str]:
        if not self.redis:
            return await self.memory.hget(key, field)
        return await self.redis.hget(key, field)

    async def hgetall(self, key: str) -> Dict[str, str]:
        if not self.redis:
            return await self.memory.hgetall(key)
        return await self.redis.hgetall(key)

    async def hdel(self, key: str, field: str) -> bool:
        """
        Delete a hash field.

        Returns:
            True if the field existed
        """
        if not self.redis:
            return await self.memory.hdel(key, field)
        return bool(await self.redis.hdel(key, field))

    async def ping(self) -> bool:
        if not self.redis:
            return True
        return bool(await self.redis.ping())


# Global cache instance
cache = RedisCache()


# Timestamp helpers shared by the presence and typing trackers

def typing_key(conversation_id: str) -> str:
    return f"typing:{conversation_id}"


PRESENCE_KEY = "presence:heartbeats"


async def set_timestamp(key: str, field: str, timestamp: float, ttl: Optional[int] = None) -> None:
    """Store a unix timestamp under key/field."""
    await cache.hset(key, field, repr(timestamp), ttl)


async def get_timestamp(key: str, field: str) -> Optional[float]:
    value = await cache.hget(key, field)
    return float(value) if value is not None else None


async def get_timestamps(key: str) -> Dict[str, float]:
    """All field -> unix timestamp pairs under key."""
    raw = await cache.hgetall(key)
    return {field: float(value) for field, value in raw.items()}

