"""
Fixed-window rate limiting on the Counter Store.

The first request in a window creates `rl:<scope>:<key>` and arms its TTL; later
requests only increment. Store errors propagate so the protected call is
rejected rather than let through.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.core.errors import RateLimited
from app.services.counter_store import CounterStore

logger = logging.getLogger(__name__)

DAY = 24 * 60 * 60

# scope -> (limit, window seconds)
POLICIES = {
    "report": (50, DAY),
    "content": (10, DAY),
    "ip": (30, 60 * 60),
    "admin": (5, 60),
}


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    reset_at: float
    checked_at: float

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "limit": self.limit,
            "resetAt": int(self.reset_at),
        }


class RateLimiter:
    def __init__(self, store: CounterStore):
        self.store = store

    def check(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        redis_key = f"rl:{key}"
        now = time.time()

        count = self.store.incr(redis_key)
        if count == 1:
            self.store.expire(redis_key, window_seconds)

        ttl = self.store.ttl(redis_key)
        if ttl < 0:
            # Counter lost its TTL (crash between INCR and EXPIRE); re-arm it
            self.store.expire(redis_key, window_seconds)
            ttl = window_seconds

        result = RateLimitResult(
            allowed=count <= limit,
            remaining=max(0, limit - count),
            limit=limit,
            reset_at=now + ttl,
            checked_at=now,
        )
        if not result.allowed:
            logger.info("[RateLimit] %s over limit (%s/%s)", key, count, limit)
        return result

    def check_policy(self, scope: str, identifier: str) -> RateLimitResult:
        limit, window = POLICIES[scope]
        return self.check(f"{scope}:{identifier}", limit, window)

    def check_report(self, email: str) -> RateLimitResult:
        return self.check_policy("report", email.strip().lower())

    def check_content(self, email: str) -> RateLimitResult:
        return self.check_policy("content", email.strip().lower())

    def check_ip(self, ip: str) -> RateLimitResult:
        return self.check_policy("ip", ip)

    def check_admin(self, ip: str) -> RateLimitResult:
        return self.check_policy("admin", ip)

    def enforce(self, result: RateLimitResult, message: Optional[str] = None) -> RateLimitResult:
        if not result.allowed:
            raise RateLimited(message or "Rate limit exceeded. Please try again later.", result)
        return result


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"
