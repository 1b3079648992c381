"""Redis fixed-window rate limiter for providers."""

import logging
import time

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Check and increment in one EVAL so concurrent workers cannot both pass
# on the same stale count.
_RATE_LIMIT_LUA = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local ttl = tonumber(ARGV[2])

local count = tonumber(redis.call('GET', key) or '0')
if count >= limit then
    return 0
end
redis.call('INCR', key)
redis.call('EXPIRE', key, ttl)
return 1
"""

_BUCKET_SECONDS = 60


class RateLimiter:
    """Per-provider-type counter in one-minute buckets.

    The key is ``ratelimit:{provider_type}:{minute}``; it rolls over every
    minute and expires shortly after. If Redis errors the check fails
    open: an unreachable counter store never blocks a send.
    """

    KEY_PREFIX = "ratelimit"

    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client
        self._script = self._redis.register_script(_RATE_LIMIT_LUA)

    def key_for(self, provider_type: str, now: float) -> str:
        bucket = int(now // _BUCKET_SECONDS)
        return f"{self.KEY_PREFIX}:{provider_type}:{bucket}"

    def check(
        self, provider_type: str, max_per_minute: int, now: float | None = None
    ) -> bool:
        """Consume one slot for *provider_type* in the current minute.

        Returns True if the attempt is allowed, False if the bucket is full.
        """
        now = time.time() if now is None else now
        key = self.key_for(provider_type, now)
        try:
            result = self._script(
                keys=[key],
                args=[max_per_minute, _BUCKET_SECONDS * 2],
            )
        except RedisError:
            logger.warning(
                "Rate limit check failed, allowing send",
                extra={"provider_type": provider_type, "key": key},
                exc_info=True,
            )
            return True
        return bool(result)
