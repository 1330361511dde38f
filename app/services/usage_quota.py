"""
Monthly generation quotas per email and product family.

    usage:<family>:<email>:<YYYY-MM>   INCR counter, 45 day TTL
    abuse:<email>                      lifetime generation count, no TTL

increment() decides on the value INCR returns, so two concurrent requests can
never both take the last slot; the loser's increment is undone with DECR.
"""
import logging
from datetime import datetime
from typing import Optional

from app.core import products
from app.services.access_tokens import normalize_email
from app.services.counter_store import CounterStore
from app.services.entitlements import EntitlementResolver, validate_family

logger = logging.getLogger(__name__)

USAGE_TTL_SECONDS = 45 * 24 * 60 * 60
ABUSE_WARNING_EVERY = 100


def current_period(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    return now.strftime("%Y-%m")


def _usage_key(family: str, email: str, period: str) -> str:
    return f"usage:{family}:{email}:{period}"


def _remaining(limit: int, used: int) -> int:
    if limit == products.UNLIMITED:
        return products.UNLIMITED
    return max(0, limit - used)


class UsageQuotaTracker:
    def __init__(self, store: CounterStore, resolver: Optional[EntitlementResolver] = None):
        self.store = store
        self.resolver = resolver or EntitlementResolver(store)

    def _current_usage(self, family: str, email: str, period: str) -> int:
        value = self.store.get(_usage_key(family, email, period))
        return int(value) if value else 0

    def check(self, email: str, family: str = products.MARKET_ASSASSIN) -> dict:
        validate_family(family)
        email = normalize_email(email)
        grant = self.resolver.get(email, family)
        period = current_period()
        used = self._current_usage(family, email, period)

        if grant is None:
            return {"allowed": False, "currentUsage": used, "limit": 0, "remaining": 0,
                    "tier": None, "period": period}

        tier = grant["tier"]
        limit = products.get_monthly_quota(family, tier)
        allowed = limit == products.UNLIMITED or used < limit
        return {"allowed": allowed, "currentUsage": used, "limit": limit,
                "remaining": _remaining(limit, used), "tier": tier, "period": period}

    def increment(self, email: str, family: str = products.MARKET_ASSASSIN) -> dict:
        validate_family(family)
        email = normalize_email(email)
        grant = self.resolver.get(email, family)
        period = current_period()

        if grant is None:
            used = self._current_usage(family, email, period)
            return {"success": False, "currentUsage": used, "limit": 0, "remaining": 0,
                    "tier": None, "period": period}

        tier = grant["tier"]
        limit = products.get_monthly_quota(family, tier)
        key = _usage_key(family, email, period)

        new_count = self.store.incr(key)
        if new_count == 1:
            self.store.expire(key, USAGE_TTL_SECONDS)

        if limit != products.UNLIMITED and new_count > limit:
            used = self.store.decr(key)
            logger.info("[Usage] %s over %s quota (%s/%s)", email, family, new_count - 1, limit)
            return {"success": False, "currentUsage": used, "limit": limit,
                    "remaining": 0, "tier": tier, "period": period}

        return {"success": True, "currentUsage": new_count, "limit": limit,
                "remaining": _remaining(limit, new_count), "tier": tier, "period": period}

    def release(self, email: str, family: str = products.MARKET_ASSASSIN) -> int:
        """Give back one unit after the metered operation failed downstream."""
        validate_family(family)
        email = normalize_email(email)
        key = _usage_key(family, email, current_period())
        if self._current_usage(family, email, current_period()) <= 0:
            return 0
        used = self.store.decr(key)
        if used < 0:
            # A concurrent release already brought it to zero
            used = self.store.incr(key)
        return used

    def track_generation(self, email: str) -> int:
        email = normalize_email(email)
        count = self.store.incr(f"abuse:{email}")
        if count % ABUSE_WARNING_EVERY == 0:
            logger.warning("[Abuse] %s has generated %s reports", email, count)
        return count

    def abuse_count(self, email: str) -> int:
        value = self.store.get(f"abuse:{normalize_email(email)}")
        return int(value) if value else 0
