"""Rate limiter against a real Redis."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from redis import Redis

from dispatch_worker.rate_limiter import RateLimiter

pytestmark = pytest.mark.integration

NOW = 1_700_000_000.0


class TestRateLimiterRedis:
    def test_blocks_after_limit(self, redis_client: Redis) -> None:
        limiter = RateLimiter(redis_client)

        results = [limiter.check("twilio", 3, now=NOW) for _ in range(5)]

        assert results == [True, True, True, False, False]
        assert int(redis_client.get(limiter.key_for("twilio", NOW))) == 3

    def test_new_minute_resets(self, redis_client: Redis) -> None:
        limiter = RateLimiter(redis_client)
        limiter.check("twilio", 1, now=NOW)

        assert limiter.check("twilio", 1, now=NOW) is False
        assert limiter.check("twilio", 1, now=NOW + 60) is True

    def test_key_expires(self, redis_client: Redis) -> None:
        limiter = RateLimiter(redis_client)
        limiter.check("sendgrid", 10, now=NOW)

        assert 0 < redis_client.ttl(limiter.key_for("sendgrid", NOW)) <= 120

    def test_concurrent_checks_never_exceed_limit(self, redis_client: Redis) -> None:
        limiter = RateLimiter(redis_client)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: limiter.check("vonage", 10, now=NOW), range(40)))

        assert results.count(True) == 10
