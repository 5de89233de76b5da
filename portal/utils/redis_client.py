from functools import lru_cache

from redis.asyncio import Redis

from portal.core.settings import settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    """Shared client for readiness probes; rate-limit counters go through slowapi's own storage."""
    return Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
