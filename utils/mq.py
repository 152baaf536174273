"""
Redis Pub/Sub publisher for sync events.

Events are pydantic models serialised with orjson. Publishing retries on
transient Redis errors; callers decide whether a final failure matters.
"""

import logging
from typing import Any, Optional

import orjson
import redis.asyncio as redis
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (redis.ConnectionError, redis.TimeoutError)


class RedisPublisher:
    """Lazily connected publisher with a pooled client."""

    def __init__(self, redis_url: Optional[str] = None, channel: Optional[str] = None) -> None:
        """
        Args:
            redis_url: Redis connection URL, defaults to settings.REDIS_URL
            channel: Default channel for publish_event, defaults to settings.REDIS_CHANNEL_SYNC
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.channel = channel or settings.REDIS_CHANNEL_SYNC
        self.client: Optional[redis.Redis] = None

    async def connect(self) -> redis.Redis:
        if self.client is None:
            self.client = redis.from_url(
                self.redis_url,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                decode_responses=False,
            )
        return self.client

    @retry(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """
        Publish a JSON message.

        Returns:
            Number of subscribers that received it

        Raises:
            redis.RedisError: If publishing still fails after retries
        """
        client = await self.connect()
        receivers = await client.publish(channel, orjson.dumps(message))
        logger.debug("Published to %s (%d receivers)", channel, receivers)
        return receivers

    async def publish_event(self, event: BaseModel, channel: Optional[str] = None) -> int:
        """Publish a pydantic event on the given or default channel."""
        return await self.publish(channel or self.channel, event.model_dump(mode="json"))

    async def ping(self) -> bool:
        """True if Redis answers; never raises."""
        try:
            client = await self.connect()
            return bool(await client.ping())
        except redis.RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None
