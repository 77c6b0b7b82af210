"""Redis connection management."""

from .database import RedisManager, close_redis, get_redis_client, init_redis, redis_manager

__all__ = ["RedisManager", "close_redis", "get_redis_client", "init_redis", "redis_manager"]
