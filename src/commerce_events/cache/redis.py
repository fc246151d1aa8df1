"""Redis-backed cache store."""

from datetime import timedelta

import redis
from loguru import logger

from commerce_events.settings import Settings

from .base import CacheStore


class RedisCacheStore(CacheStore):
    """``CacheStore`` over a synchronous redis-py client.

    The client must be created with ``decode_responses=True`` so values come
    back as ``str``. redis-py clients are thread-safe through their connection
    pool, so one store can be shared by every publisher in the process.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        """Create a store with its own connection pool.

        Args:
            url: Redis connection string (e.g. ``redis://localhost:6379/0``)
        """
        logger.debug(f"Creating Redis cache store for {url}")
        return cls(redis.Redis.from_url(url, decode_responses=True))

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCacheStore":
        """Create a store connected to ``settings.redis_url``."""
        return cls.from_url(settings.redis_url)

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        self._client.set(key, value, ex=ttl)

    def delete(self, key: str) -> bool:
        return bool(self._client.delete(key))

    def exists(self, key: str) -> bool:
        return self._client.exists(key) > 0

    def push_left(self, key: str, value: str) -> int:
        return int(self._client.lpush(key, value))

    def trim(self, key: str, start: int, end: int) -> None:
        self._client.ltrim(key, start, end)

    def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        return list(self._client.lrange(key, start, end))

    def expire(self, key: str, ttl: timedelta) -> bool:
        return bool(self._client.expire(key, ttl))

    def close(self) -> None:
        self._client.close()
