"""
Redis infrastructure

Shared async connection pool used by the broadcast relay and the
rate limiter.
"""

from typing import Optional

from redis.asyncio import Redis

from simulive.core.config import settings
from simulive.core.logging import get_logger

logger = get_logger(__name__)

_redis: Optional[Redis] = None


async def init_redis_pool() -> None:
    global _redis
    if not settings.redis_enabled:
        logger.info("Redis disabled by configuration")
        return
    _redis = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        await _redis.ping()
        logger.info("Redis connected", url=settings.redis_url)
    except Exception as e:
        # Keep the client; commands retry the connection lazily
        logger.warning(f"Redis ping failed at startup: {e}")


async def close_redis_pool() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis_client() -> Optional[Redis]:
    return _redis
