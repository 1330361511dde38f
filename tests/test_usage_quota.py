import logging

from app.services.entitlements import EntitlementResolver
from app.services.usage_quota import USAGE_TTL_SECONDS, UsageQuotaTracker, current_period


def _tracker(store, email=None, tier=None, family="market-assassin"):
    resolver = EntitlementResolver(store)
    if email:
        resolver.grant(email, family, tier)
    return UsageQuotaTracker(store, resolver)


def test_no_grant_is_not_allowed(store):
    tracker = _tracker(store)
    check = tracker.check("nobody@example.com")
    assert check["allowed"] is False
    assert check["limit"] == 0
    assert check["tier"] is None
    assert tracker.increment("nobody@example.com")["success"] is False


def test_standard_tier_stops_at_thirty(store):
    tracker = _tracker(store, "a@example.com", "standard")
    for i in range(30):
        result = tracker.increment("a@example.com")
        assert result["success"] is True
        assert result["currentUsage"] == i + 1

    over = tracker.increment("a@example.com")
    assert over["success"] is False
    assert over["currentUsage"] == 30
    assert over["remaining"] == 0

    check = tracker.check("a@example.com")
    assert check["allowed"] is False
    assert check["currentUsage"] == 30


def test_counter_key_expires(store):
    tracker = _tracker(store, "a@example.com", "standard")
    tracker.increment("a@example.com")
    key = f"usage:market-assassin:a@example.com:{current_period()}"
    assert 0 < store.ttl(key) <= USAGE_TTL_SECONDS


def test_premium_is_unlimited(store):
    tracker = _tracker(store, "p@example.com", "premium")
    for _ in range(40):
        result = tracker.increment("p@example.com")
    assert result["success"] is True
    assert result["limit"] == -1
    assert result["remaining"] == -1


def test_release_gives_back_one_unit(store):
    tracker = _tracker(store, "a@example.com", "standard")
    tracker.increment("a@example.com")
    tracker.increment("a@example.com")
    assert tracker.release("a@example.com") == 1
    assert tracker.release("a@example.com") == 0
    assert tracker.release("a@example.com") == 0
    assert tracker.check("a@example.com")["currentUsage"] == 0


def test_abuse_counter_warns_every_hundred(store, caplog):
    tracker = _tracker(store)
    with caplog.at_level(logging.WARNING, logger="app.services.usage_quota"):
        for _ in range(100):
            tracker.track_generation("heavy@example.com")
    assert tracker.abuse_count("heavy@example.com") == 100
    assert store.ttl("abuse:heavy@example.com") == -1
    assert any("heavy@example.com" in r.message for r in caplog.records)
