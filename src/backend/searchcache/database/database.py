"""
Redis connection management for the shared search cache.

Redis is optional: when ENABLE_REDIS_CACHING is false or the server is
unreachable the app falls back to the in-memory cache store.
"""

import logging
import os
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Redis manager for the shared search result cache.

    Features:
    - REDIS_URL or host/port/password/db configuration
    - Async connection pooling (redis.asyncio)
    - Connectivity check on init
    """

    def __init__(self):
        """Initialize Redis manager with .env configuration."""
        self.redis_url = os.getenv("REDIS_URL")
        self.redis_host = os.getenv("REDIS_HOST", "localhost")
        self.redis_port = int(os.getenv("REDIS_PORT", "6379"))
        self.redis_password = os.getenv("REDIS_PASSWORD")
        self.redis_db = int(os.getenv("REDIS_DB", "0"))
        self.enable_caching = os.getenv("ENABLE_REDIS_CACHING", "true").lower() == "true"

        self.client: Optional[Redis] = None
        self._initialized = False

    async def init_redis(self):
        """Initialize Redis connection."""
        if self._initialized:
            return

        try:
            # Use REDIS_URL if available, otherwise construct from components
            if self.redis_url:
                self.client = Redis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    encoding="utf-8"
                )
            else:
                self.client = Redis(
                    host=self.redis_host,
                    port=self.redis_port,
                    password=self.redis_password,
                    db=self.redis_db,
                    decode_responses=True,
                    encoding="utf-8"
                )

            await self.client.ping()
            self._initialized = True
            logger.info(f"Redis connected: {self.redis_url or f'{self.redis_host}:{self.redis_port}'}")

        except Exception as e:
            logger.error(f"Redis connection failed: {e}")
            self.client = None
            raise

    async def is_healthy(self) -> bool:
        """Ping the server. False when not connected or unreachable."""
        if not self.client:
            return False
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    async def close(self):
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
            logger.info("Redis connection closed")
        self.client = None
        self._initialized = False


# Global manager instance
redis_manager = RedisManager()


async def init_redis():
    """Initialize Redis connection."""
    await redis_manager.init_redis()


async def get_redis_client() -> Optional[Redis]:
    """
    Get the connected Redis client.

    Returns:
        Redis client instance, or None if Redis has not been initialized
    """
    return redis_manager.client


async def close_redis():
    """Close Redis connections."""
    await redis_manager.close()
