"""Redis connection management.

Provides the async Redis client used to publish watch progress events.
"""

import redis.asyncio as redis

from ecolearn.config.settings import Settings
from ecolearn.core.logging import get_logger


logger = get_logger(__name__)


async def init_redis(settings: Settings) -> redis.Redis:
    """Create the Redis connection pool and check it answers."""
    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        raise

    return client


async def shutdown_redis(client: redis.Redis | None) -> None:
    """Close Redis connection."""
    if client is not None:
        await client.aclose()
        logger.info("redis_disconnected")


def progress_channel(user_id: str) -> str:
    """Get user-specific watch progress channel name."""
    return f"progress:user:{user_id}"
