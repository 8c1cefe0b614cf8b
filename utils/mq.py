"""
Message Queue Utility - Redis Pub/Sub publishing

Run notifications are fire-and-forget: a message published while nobody is
subscribed is simply dropped by Redis.

Usage:
    publisher = RedisPublisher("redis://localhost:6379/0")
    await publisher.publish("harvest.runs", {"type": "harvest_completed"})
    await publisher.close()
"""

import logging
from typing import Any, Optional

import orjson
import redis.asyncio as redis
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (redis.ConnectionError, redis.TimeoutError)


class RedisPublisher:
    """Pooled Redis client that publishes JSON payloads to a channel."""

    def __init__(self, redis_url: Optional[str] = None, max_connections: Optional[int] = None) -> None:
        """
        Args:
            redis_url: Connection URL, defaults to settings.REDIS_URL
            max_connections: Pool size, defaults to settings.REDIS_MAX_CONNECTIONS
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS
        self.client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        if self.client is None:
            self.client = redis.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                decode_responses=False,  # orjson produces bytes
            )

    @retry(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """
        Serialize message with orjson and publish it, retrying transient
        connection failures.

        Returns:
            Number of subscribers that received the message

        Raises:
            redis.RedisError: If publishing still fails after three attempts
        """
        await self.connect()

        receivers = await self.client.publish(channel, orjson.dumps(message))
        logger.debug("Published to %s, receivers=%d", channel, receivers)
        return receivers

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
