import os
import unittest
from unittest.mock import Mock, patch

import redis

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from tests.base import ApiTestCase
from tours_api.core.config import settings
from tours_api.services import rate_limit
from tours_api.services.rate_limit import InMemoryRateLimiter, RedisRateLimiter


class LimiterTests(unittest.TestCase):
    def test_in_memory_limiter_counts_per_key(self):
        limiter = InMemoryRateLimiter()
        results = [limiter.hit("k", limit=2, window_seconds=60) for _ in range(3)]
        self.assertEqual([r.allowed for r in results], [True, True, False])
        self.assertEqual([r.remaining for r in results], [1, 0, 0])
        self.assertTrue(limiter.hit("other", limit=2, window_seconds=60).allowed)
        self.assertGreater(results[-1].reset_in, 0)

    def test_redis_limiter_sets_window_on_first_hit(self):
        client = Mock()
        client.incr.return_value = 1
        quota = RedisRateLimiter(client).hit("tours_api:rl:1.2.3.4", limit=100, window_seconds=3600)
        client.expire.assert_called_once_with("tours_api:rl:1.2.3.4", 3600)
        self.assertTrue(quota.allowed)
        self.assertEqual((quota.remaining, quota.reset_in), (99, 3600))

    def test_redis_limiter_reports_remaining_window(self):
        client = Mock()
        client.incr.return_value = 101
        client.ttl.return_value = 120
        quota = RedisRateLimiter(client).hit("tours_api:rl:1.2.3.4", limit=100, window_seconds=3600)
        client.expire.assert_not_called()
        self.assertFalse(quota.allowed)
        self.assertEqual(quota.reset_in, 120)

    def test_falls_back_to_memory_when_redis_is_down(self):
        with patch.object(rate_limit, "_cached_limiter", None), patch(
            "tours_api.services.rate_limit.redis.Redis.from_url"
        ) as from_url:
            from_url.return_value.ping.side_effect = redis.ConnectionError("down")
            limiter = rate_limit.get_rate_limiter()
        self.assertIsInstance(limiter, InMemoryRateLimiter)


class ApiRateLimitTests(ApiTestCase):
    def test_successful_responses_carry_quota_headers(self):
        with patch.object(settings, "API_RATE_LIMIT", 5):
            first = self.client.get("/api/v1/tours")
            second = self.client.get("/api/v1/tours")
        self.assertEqual(first.headers.get("x-ratelimit-limit"), "5")
        self.assertEqual(first.headers.get("x-ratelimit-remaining"), "4")
        self.assertEqual(second.headers.get("x-ratelimit-remaining"), "3")

    def test_requests_over_limit_get_429(self):
        with patch.object(settings, "API_RATE_LIMIT", 3):
            statuses = [self.client.get("/api/v1/tours").status_code for _ in range(4)]
            other_ip = self.client.get("/api/v1/tours", headers={"X-Forwarded-For": "10.0.0.9"})
            blocked = self.client.get("/api/v1/tours")
        self.assertEqual(statuses, [200, 200, 200, 429])
        self.assertEqual(other_ip.status_code, 200)
        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(blocked.json()["status"], "fail")
        self.assertEqual(blocked.json()["message"], "Too many requests from this IP, please try again later.")
        self.assertTrue(int(blocked.headers["retry-after"]) > 0)

    def test_health_is_not_limited(self):
        with patch.object(settings, "API_RATE_LIMIT", 1):
            statuses = [self.client.get("/health").status_code for _ in range(3)]
        self.assertEqual(statuses, [200, 200, 200])


if __name__ == "__main__":
    unittest.main()
