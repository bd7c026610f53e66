"""Fixed-window rate limiter backed by an expiring shared counter store."""
import logging
import time
from typing import Optional

import redis
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class RateLimiter:
    """Count requests per key in expiring windows.

    Redis INCR + EXPIRE keeps the counters shared between processes. Without
    a Redis URL the counters live in this process only (development/tests).
    """

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "ratelimit"):
        self.prefix = prefix
        self.backend = "memory"
        self._redis: Optional[aioredis.Redis] = None
        self._memory_counters: dict[str, tuple[int, float]] = {}  # key -> (count, window end)

        if redis_url:
            self._redis = aioredis.from_url(redis_url, decode_responses=True)
            self.backend = "redis"
            logger.info("Using Redis for rate limiting")
        else:
            logger.info("Using in-memory rate limiting (Redis URL not provided)")

    async def check(self, key: str, limit: int, window_seconds: int) -> tuple[bool, Optional[int]]:
        """Register a hit for key.

        Returns:
            (allowed, retry_after_seconds). retry_after is None when allowed.
        """
        full_key = f"{self.prefix}:{key}"

        if self._redis is not None:
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.incr(full_key)
                    pipe.expire(full_key, window_seconds, nx=True)
                    pipe.ttl(full_key)
                    count, _, ttl = await pipe.execute()
            except redis.RedisError as e:
                # Fail open while Redis is unreachable
                logger.error(f"Rate limiter unavailable for {key=}: {e}")
                return True, None
            if count > limit:
                return False, max(int(ttl), 1)
            return True, None

        # No await between read and write, so this is atomic on the event loop
        now = time.monotonic()
        self._prune_expired(now)
        count, window_end = self._memory_counters.get(full_key, (0, now + window_seconds))
        count += 1
        self._memory_counters[full_key] = (count, window_end)

        if count > limit:
            return False, max(int(window_end - now), 1)
        return True, None

    def _prune_expired(self, now: float) -> None:
        expired = [key for key, (_, window_end) in self._memory_counters.items() if window_end <= now]
        for key in expired:
            del self._memory_counters[key]

    async def reset(self, key: str) -> None:
        full_key = f"{self.prefix}:{key}"
        if self._redis is not None:
            await self._redis.delete(full_key)
        else:
            self._memory_counters.pop(full_key, None)
