"""
Redis Streams Event Broker Wrapper.

Async interface for publishing clinic events to Redis Streams.
"""

import logging

import redis.asyncio as redis

from .events import ClinicEvent

logger = logging.getLogger(__name__)


class EventBroker:
    """
    Wrapper around Redis Streams for clinic events.
    """
    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def publish(self, stream_key: str, event: ClinicEvent, max_len: int = 10000) -> str:
        """
        Publish an event to a Redis Stream.

        Args:
            stream_key: The Redis key for the stream (e.g., "clinic:notifications")
            event: ClinicEvent object
            max_len: Maximum stream length (older entries are trimmed)

        Returns:
            The message ID of the published event.
        """
        try:
            data = event.to_redis_dict()
            return await self.redis.xadd(stream_key, data, maxlen=max_len, approximate=True)
        except Exception as e:
            logger.error(f"Failed to publish event to {stream_key}: {e}")
            raise
