"""
Redis Client - the keyed durable store behind event locks, customer records
and onboarding markers.

The client is created once at application startup from the settings object
and kept on ``app.state``; request handlers receive it through ``get_redis``.
"""
from urllib.parse import urlparse

import redis.asyncio as aioredis
from fastapi import Request

from app.core.config import Settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def _mask_redis_url(url: str) -> str:
    """Hide the password in REDIS_URL for logs (redis://:****@host:6379)."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            return url.replace(f":{parsed.password}@", ":****@")
        return url
    except ValueError:
        return "redis://****"


async def create_redis(settings: Settings) -> aioredis.Redis:
    """Open a pooled async client and verify the connection."""
    client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    await client.ping()
    logger.info("Redis client initialized", extra_data={
        "url": _mask_redis_url(settings.REDIS_URL),
    })
    return client


async def close_redis(client: aioredis.Redis | None) -> None:
    """Close the client on application shutdown."""
    if client is not None:
        await client.aclose()
        logger.info("Redis connection closed")


async def get_redis(request: Request) -> aioredis.Redis:
    """FastAPI dependency: the process-wide client stored on app.state."""
    return request.app.state.redis
