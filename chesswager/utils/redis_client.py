"""Redis client for realtime resume state.

Redis is optional: when ``redis_url`` is unset the hub keeps resume state in
process memory only.
"""

from redis.asyncio import ConnectionPool, Redis

from chesswager.config import get_settings

settings = get_settings()

# Global Redis connection pool and client instance
redis_pool: ConnectionPool | None = None
redis_client: Redis | None = None


async def init_redis() -> Redis | None:
    """Initialize Redis connection if configured."""
    global redis_pool, redis_client

    if not settings.redis_url:
        return None

    redis_pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=50,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
        retry_on_timeout=True,
        encoding="utf-8",
        decode_responses=True,
    )
    redis_client = Redis(connection_pool=redis_pool)

    # Test connection
    await redis_client.ping()
    return redis_client


async def close_redis() -> None:
    """Close Redis connection and pool."""
    global redis_pool, redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None


def get_redis_client() -> Redis | None:
    return redis_client
