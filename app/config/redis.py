"""
Redis configuration for cross-instance event fan-out.

The connection registry lives in process memory; when several API
instances run behind a load balancer, subscription events are also
published to Redis so the instance holding the user's socket can relay
them.
"""

from typing import Optional
import logging

import redis
import redis.asyncio as aioredis
from redis import Redis

from app.config.settings import settings

logger = logging.getLogger(__name__)

EVENT_CHANNEL_PREFIX = "subscription-events"
EVENT_CHANNEL_PATTERN = f"{EVENT_CHANNEL_PREFIX}:*"


def event_channel(user_id: str) -> str:
    """Per-user pub/sub channel name."""
    return f"{EVENT_CHANNEL_PREFIX}:{user_id}"


def get_redis_client(url: Optional[str] = None) -> Redis:
    """Redis client with connection pooling, decoding responses to str."""
    return redis.from_url(url or settings.REDIS_URL, decode_responses=True)


def get_async_redis_client(url: Optional[str] = None) -> aioredis.Redis:
    """Asyncio client for the relay subscriber."""
    return aioredis.from_url(url or settings.REDIS_URL, decode_responses=True)


def build_fanout_client() -> Optional[Redis]:
    """Client for event fan-out, or None when fan-out is disabled."""
    if not settings.ENABLE_REDIS_FANOUT:
        return None
    logger.info("Redis fan-out enabled for subscription events")
    return get_redis_client()
