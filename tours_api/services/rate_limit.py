"""Per-client request quota for the ``/api`` routes.

Counts live in Redis (one fixed window per client IP); when Redis cannot be
reached at first use the process falls back to an in-memory counter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol

import redis
from fastapi import Request, Response

from tours_api.core.config import settings
from tours_api.core.errors import TooManyRequests

_LOG = logging.getLogger("tours_api.rate_limit")

KEY_PREFIX = "tours_api:rl"


@dataclass
class Quota:
    count: int
    limit: int
    reset_in: int

    @property
    def allowed(self) -> bool:
        return self.count <= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class RateLimiter(Protocol):
    def hit(self, key: str, *, limit: int, window_seconds: int) -> Quota:
        ...


class InMemoryRateLimiter:
    def __init__(self):
        self._windows: dict[str, tuple[int, datetime]] = {}
        self._lock = Lock()

    def hit(self, key: str, *, limit: int, window_seconds: int) -> Quota:
        now = datetime.now(timezone.utc)
        with self._lock:
            for stale in [k for k, (_, ends) in self._windows.items() if ends <= now]:
                del self._windows[stale]
            count, ends = self._windows.get(key, (0, now + timedelta(seconds=max(window_seconds, 1))))
            count += 1
            self._windows[key] = (count, ends)
        return Quota(count=count, limit=limit, reset_in=max(1, int((ends - now).total_seconds())))


class RedisRateLimiter:
    def __init__(self, client: redis.Redis):
        self.client = client

    def hit(self, key: str, *, limit: int, window_seconds: int) -> Quota:
        window = max(int(window_seconds), 1)
        count = int(self.client.incr(key))
        if count == 1:
            self.client.expire(key, window)
            return Quota(count=count, limit=limit, reset_in=window)
        ttl = int(self.client.ttl(key))
        if ttl < 0:
            # Window key lost its expiry; start a fresh window.
            self.client.expire(key, window)
            ttl = window
        return Quota(count=count, limit=limit, reset_in=ttl)


_cached_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _cached_limiter
    if _cached_limiter is None:
        try:
            client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_timeout=0.4,
                socket_connect_timeout=0.4,
            )
            client.ping()
            _cached_limiter = RedisRateLimiter(client)
        except (redis.RedisError, ValueError):
            _LOG.warning("Redis unavailable at %s; API quota is kept in memory", settings.REDIS_URL)
            _cached_limiter = InMemoryRateLimiter()
    return _cached_limiter


def client_ip(request: Request) -> str:
    forwarded = str(request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else "unknown"


def limit_api_requests(request: Request, response: Response) -> None:
    limit = int(settings.API_RATE_LIMIT)
    if limit <= 0:
        return
    ip = client_ip(request)
    quota = get_rate_limiter().hit(
        f"{KEY_PREFIX}:{ip}",
        limit=limit,
        window_seconds=int(settings.API_RATE_LIMIT_WINDOW_SECONDS),
    )
    if not quota.allowed:
        _LOG.warning("API quota exceeded ip=%s count=%s limit=%s", ip, quota.count, limit)
        raise TooManyRequests(
            "Too many requests from this IP, please try again later.",
            retry_after_seconds=quota.reset_in,
        )
    response.headers["X-RateLimit-Limit"] = str(limit)
    response.headers["X-RateLimit-Remaining"] = str(quota.remaining)
