"""
Rate Limiter Service using Redis counters (fixed window).
"""
from dataclasses import dataclass

from redis.exceptions import RedisError

from notifyhub.logging_config import get_logger

log = get_logger(component="rate_limiter")


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0


class RateLimiter:
    """Per-client fixed-window rate limiter using Redis INCR/EXPIRE."""

    def __init__(self, redis, limit: int = 100, window: int = 60):
        self.redis = redis
        self.limit = limit  # requests per window
        self.window = window  # seconds

    @staticmethod
    def key_for(client_id: str) -> str:
        return f"ratelimit:{client_id}"

    async def hit(self, client_id: str) -> RateLimitResult:
        """
        Count one request for the client and decide whether it is allowed.

        A crash between INCR and EXPIRE can leave a counter without expiry;
        that is accepted rather than corrected here.
        """
        key = self.key_for(client_id)

        try:
            count = await self.redis.incr(key)
            if count == 1:
                await self.redis.expire(key, self.window)

            if count > self.limit:
                ttl = await self.redis.ttl(key)
                retry_after = ttl if ttl and ttl > 0 else self.window
                return RateLimitResult(False, self.limit, 0, retry_after)

            return RateLimitResult(True, self.limit, self.limit - count)

        except (RedisError, OSError) as e:
            # If Redis is down, allow the request (fail open)
            log.warning("rate_limiter_unavailable", client=client_id, error=str(e))
            return RateLimitResult(True, self.limit, self.limit)
