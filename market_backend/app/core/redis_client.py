"""
Redis client construction.

Only used when notifications are fanned out across processes
(broker_backend = "redis").
"""

import redis.asyncio as redis
from market_backend.app.core.config import settings


def create_redis_client() -> redis.Redis:
    """Create an async Redis client from settings."""
    return redis.from_url(
        settings.redis_url,
        decode_responses=settings.redis_decode_responses,
    )


async def ping_redis(client: redis.Redis) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await client.ping()
    except Exception:
        return False
