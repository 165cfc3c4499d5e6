"""
Redis client initialization and connection management.

The client is created once by the application lifespan and handed to
request handlers through the ``get_redis`` dependency.
"""

import logging
import redis.asyncio as redis
from fastapi import Request
from parcel_delivery.app.core.config import Settings

logger = logging.getLogger("parcel_delivery.redis")


def build_redis(settings: Settings) -> redis.Redis:
    """Create an async Redis client from ``settings``."""
    return redis.from_url(
        settings.redis_url,
        decode_responses=settings.redis_decode_responses,
    )


async def get_redis(request: Request):
    """
    Get Redis client instance.

    Used as a FastAPI dependency.
    """
    return request.app.state.redis


async def ping_redis(client) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await client.ping()
    except redis.RedisError as e:
        logger.warning("Redis ping failed", extra={"error": str(e)})
        return False
