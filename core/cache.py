"""
Redis cache client

Small async cache used for derived data (campaign statistics). Every
operation is failure tolerant: when Redis is disabled or unreachable reads
return None and writes/deletes are no-ops, so callers never need to guard
cache calls.
"""

import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisCache:
    """Failure-tolerant Redis cache"""

    def __init__(self, url: Optional[str] = None, enabled: bool = True):
        if url is None:
            from core.config import get_settings
            infra = get_settings().infrastructure
            url = infra.redis_url
            enabled = enabled and infra.redis_enabled

        self.url = url
        self.enabled = enabled
        self._client: Optional[redis.Redis] = None

    async def initialize(self) -> None:
        """Connect to Redis; stays disabled if the server is unreachable"""
        if not self.enabled:
            logger.info("Redis cache disabled")
            return
        try:
            self._client = redis.from_url(self.url, decode_responses=True)
            await self._client.ping()
            logger.info("Redis cache initialized")
        except Exception as e:
            logger.warning(f"Redis not available, caching disabled: {e}")
            self._client = None

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def get(self, key: str) -> Optional[str]:
        if not self._client:
            return None
        try:
            return await self._client.get(key)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: int = 30) -> bool:
        if not self._client:
            return False
        try:
            await self._client.set(key, value, ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self._client:
            return False
        try:
            await self._client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            return False

    async def close(self) -> None:
        if self._client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.debug(f"Error closing Redis client: {e}")
            self._client = None


__all__ = ["RedisCache"]
