"""
Redis connection lifecycle.

The payment intent store and its expiry listener share one `redis.asyncio` client owned by
`RedisManager`. On connect the server is asked to publish key-expiry events
(`notify-keyspace-events Ex`); managed Redis offerings often forbid `CONFIG SET`, in which case the
setting has to be applied on the server side and a warning is logged.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger

logger = get_logger(prefix="[REDIS]")


class RedisManager:
    """Owns the async Redis client."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.client: Optional[aioredis.Redis] = None

    async def connect(self):
        url = self.settings.effective_redis_url
        logger.info("Connecting to Redis db %d", self.settings.REDIS_DB)
        self.client = aioredis.Redis.from_url(url, decode_responses=True)
        try:
            await self.client.ping()
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}", exc_info=True)
            raise

        try:
            await self.client.config_set("notify-keyspace-events", "Ex")
        except ResponseError as e:
            logger.warning(f"Could not enable keyspace expiry events (set them server-side): {e}")
        logger.info("Connected to Redis")

    async def disconnect(self):
        if self.client is None:
            return
        await self.client.aclose()
        self.client = None
        logger.info("Disconnected from Redis")

    def get_client(self) -> aioredis.Redis:
        if self.client is None:
            raise ConnectionError("Redis not connected. Call connect() first.")
        return self.client

    @property
    def expired_channel(self) -> str:
        return f"__keyevent@{self.settings.REDIS_DB}__:expired"
