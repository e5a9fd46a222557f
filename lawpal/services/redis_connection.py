"""
Redis connection for the /auth rate limiter.

Nothing else in LawPal touches Redis, so it is only connected when
ENABLE_RATE_LIMITING is set.
"""

import logging

import redis.asyncio as aioredis

from lawpal.core.config import Settings, settings

logger = logging.getLogger("lawpal.redis")


class RedisConnection:
    """Holds the pooled client; `is_available` stays False until `connect` succeeds."""

    def __init__(self, config: Settings | None = None):
        self.config = config or settings
        self.client: aioredis.Redis | None = None
        self._connected = False

    @property
    def is_available(self) -> bool:
        return self._connected and self.client is not None

    async def connect(self) -> bool:
        """Open the pool and ping it. Returns False instead of raising."""
        url = self.config.REDIS_URL
        if not url:
            logger.warning("ENABLE_RATE_LIMITING is set but REDIS_URL is empty")
            return False

        client = aioredis.from_url(url, decode_responses=True, max_connections=10)
        try:
            await client.ping()
        except Exception as e:
            logger.error("Redis at %s is unreachable: %s", self.config.sanitize_url(url), e)
            await client.aclose()
            return False

        self.client = client
        self._connected = True
        logger.info("Rate limit counters stored in Redis at %s", self.config.sanitize_url(url))
        return True

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
        self.client = None
        self._connected = False


redis_connection = RedisConnection()
