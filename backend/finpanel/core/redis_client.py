"""
Redis client initialization and connection management.

Redis backs token revocation; the client is lazy, so nothing connects until first use.
"""

import redis.asyncio as redis
from backend.finpanel.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    This can be used as a FastAPI dependency if needed.
    """
    return redis_client

