"""
Chat rate limiting

Sliding window per identity: at most ``limit`` messages in any trailing
``window_seconds``. The in-memory backend serves a single process; the Redis
backend keeps one sorted set per identity so every process shares the window.
"""

import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from redis.asyncio import Redis

from simulive.core.config import settings
from simulive.core.errors import RateLimitedError
from simulive.core.logging import get_logger
from simulive.infra.redis import get_redis_client

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """Base limiter; backends implement ``_hit``"""

    def __init__(
        self,
        limit: int = settings.chat_rate_limit_messages,
        window_seconds: int = settings.chat_rate_limit_window_seconds,
        enabled: bool = settings.rate_limit_enabled,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.enabled = enabled
        self.clock = clock

    async def _hit(self, key: str) -> Tuple[bool, int]:
        raise NotImplementedError

    async def check(self, identifier: str, scope: str = "chat") -> None:
        """Record one attempt; raise RateLimitedError when over the limit"""
        if not self.enabled:
            return
        allowed, retry_after = await self._hit(f"rate_limit:{scope}:{identifier}")
        if not allowed:
            logger.info("rate_limit.rejected", identifier=identifier, scope=scope, retry_after=retry_after)
            raise RateLimitedError(retry_after=retry_after)


class MemoryRateLimiter(SlidingWindowRateLimiter):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._hits: Dict[str, Deque[float]] = {}
        self._last_cleanup: Optional[float] = None

    def cleanup_stale_keys(self, now: float) -> int:
        """Drop identities with no hits left in the window"""
        window_start = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in stale:
            del self._hits[key]
        self._last_cleanup = now
        return len(stale)

    async def _hit(self, key: str) -> Tuple[bool, int]:
        now = self.clock()
        window_start = now - self.window_seconds
        if self._last_cleanup is None or now - self._last_cleanup >= self.window_seconds:
            self.cleanup_stale_keys(now)
        hits = self._hits.setdefault(key, deque())

        # Remove old entries outside the window
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = max(1, int(hits[0] + self.window_seconds - now))
            return False, retry_after

        hits.append(now)
        return True, 0

    def reset(self) -> None:
        self._hits.clear()
        self._last_cleanup = None


class RedisRateLimiter(SlidingWindowRateLimiter):
    def __init__(self, redis: Optional[Redis] = None, **kwargs):
        super().__init__(**kwargs)
        self._redis = redis

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis or get_redis_client()

    async def _hit(self, key: str) -> Tuple[bool, int]:
        redis = self.redis
        if redis is None:
            # If Redis is unavailable, allow request but log warning
            logger.warning("Rate limiting bypassed - redis unavailable")
            return True, 0

        now = self.clock()
        window_start = now - self.window_seconds
        member = f"{now}:{uuid.uuid4().hex[:8]}"

        try:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, window_start)
                pipe.zcard(key)
                pipe.zadd(key, {member: now})
                pipe.expire(key, self.window_seconds + 60)
                results = await pipe.execute()

            # results[1] is the count before adding current request
            requests_in_window = results[1]
            if requests_in_window < self.limit:
                return True, 0

            # Remove the current request we just added since it's rejected
            await redis.zrem(key, member)
            oldest = await redis.zrange(key, 0, 0, withscores=True)
            if oldest:
                retry_after = max(1, int(oldest[0][1] + self.window_seconds - now))
            else:
                retry_after = self.window_seconds
            return False, retry_after
        except Exception as e:
            logger.error(f"Rate limit check failed: {e}")
            return True, 0


_limiter: Optional[SlidingWindowRateLimiter] = None


def get_rate_limiter() -> SlidingWindowRateLimiter:
    """FastAPI dependency returning the process-wide chat limiter"""
    global _limiter
    if _limiter is None:
        _limiter = RedisRateLimiter() if settings.use_redis_rate_limit else MemoryRateLimiter()
    return _limiter
