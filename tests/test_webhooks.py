import json

import redis

from app.models.access_profile import AccessProfile
from app.models.purchase import Purchase
from app.services.entitlements import EntitlementResolver
from app.services.webhook_pipeline import RECENT_EVENTS, RecentEventCache
from tests.conftest import LIVE_SECRET, TEST_SECRET, checkout_event, post_event, sign_payload


def test_checkout_grants_and_records_purchase(client, store, db_session, sent_notifications):
    resp = post_event(client, checkout_event())
    assert resp.status_code == 200
    assert resp.json() == {"received": True}

    grant = EntitlementResolver(store).get("buyer@example.com", "market-assassin")
    assert grant["tier"] == "standard"

    purchase = db_session.query(Purchase).one()
    assert purchase.provider_session_id == "cs_test_1"
    assert purchase.mode == "live"
    assert purchase.status == "completed"
    assert float(purchase.amount_paid) == 297.0

    profile = db_session.query(AccessProfile).filter_by(email="buyer@example.com").one()
    assert profile.access_assassin_standard is True
    assert profile.access_assassin_premium is False

    assert store.get("maaccess:buyer@example.com")["token"]
    recipient, template, payload = sent_notifications[0]
    assert recipient == "buyer@example.com"
    assert template == "purchase_access"
    assert "/api/ma-access/" in payload["links"]["Federal Market Assassin"]


def test_replayed_delivery_is_a_noop(client, store, db_session):
    post_event(client, checkout_event())
    before = store.get("grant:market-assassin:buyer@example.com")

    resp = post_event(client, checkout_event())
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "duplicate": True}
    assert store.get("grant:market-assassin:buyer@example.com") == before
    assert db_session.query(Purchase).count() == 1


def test_same_session_under_new_event_id_is_duplicate(client, db_session):
    post_event(client, checkout_event(event_id="evt_a"))
    RECENT_EVENTS.clear()
    resp = post_event(client, checkout_event(event_id="evt_b"))
    assert resp.json()["duplicate"] is True
    assert db_session.query(Purchase).count() == 1


def test_invalid_signature_mutates_nothing(client, store, db_session):
    payload = json.dumps(checkout_event())
    resp = client.post(
        "/webhooks/payment",
        content=payload,
        headers={"Stripe-Signature": sign_payload(payload, "whsec_wrong")},
    )
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Invalid signature"}
    assert store.get("grant:market-assassin:buyer@example.com") is None
    assert db_session.query(Purchase).count() == 0


def test_missing_signature_header(client):
    resp = client.post("/webhooks/payment", content=json.dumps(checkout_event()))
    assert resp.status_code == 400
    assert resp.json()["error"] == "No signature"


def test_test_mode_secret_is_accepted(client, db_session):
    resp = post_event(client, checkout_event(), secret=TEST_SECRET)
    assert resp.status_code == 200
    assert db_session.query(Purchase).one().mode == "test"


def test_missing_email_is_rejected(client, db_session):
    event = checkout_event(email=None)
    event["data"]["object"]["customer_details"] = {}
    resp = post_event(client, event)
    assert resp.status_code == 400
    assert "customer_email" in resp.json()["error"]
    assert db_session.query(Purchase).count() == 0


def test_bundle_grants_every_member(client, store, db_session):
    post_event(client, checkout_event(metadata={"bundle_id": "complete-govcon-bundle"}))
    grants = EntitlementResolver(store).resolve("buyer@example.com")
    assert grants == {
        "market-assassin": "premium",
        "content-generator": "content-engine",
        "contractor-database": "standard",
        "recompete": "standard",
    }
    profile = db_session.query(AccessProfile).filter_by(email="buyer@example.com").one()
    assert profile.access_assassin_standard and profile.access_assassin_premium
    assert profile.access_contractor_db and profile.access_recompete
    assert store.get("dbaccess:buyer@example.com") is not None


def test_product_from_line_items(client, store, line_items):
    line_items["cs_li"] = ["prod_TiOjPpnyLnO3eb", "price_123"]
    post_event(client, checkout_event(session_id="cs_li", metadata={}))
    assert EntitlementResolver(store).get("buyer@example.com", "market-assassin")["tier"] == "standard"


def test_unknown_product_is_acknowledged(client, store, db_session):
    resp = post_event(client, checkout_event(metadata={"product_id": "prod_unknown"}))
    assert resp.status_code == 200
    assert db_session.query(Purchase).count() == 0
    assert EntitlementResolver(store).resolve("buyer@example.com") == {}


def test_unknown_tier_is_acknowledged(client, store, db_session):
    resp = post_event(client, checkout_event(metadata={"product_id": "market-assassin", "tier": "gold"}))
    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert db_session.query(Purchase).count() == 0
    assert EntitlementResolver(store).resolve("buyer@example.com") == {}


def test_family_product_id_uses_default_tier(client, store):
    post_event(client, checkout_event(metadata={"product_id": "market-assassin"}))
    assert EntitlementResolver(store).get("buyer@example.com", "market-assassin")["tier"] == "standard"


def test_unhandled_event_type(client):
    event = {"id": "evt_x", "object": "event", "type": "customer.created", "data": {"object": {}}}
    resp = post_event(client, event)
    assert resp.status_code == 200
    assert resp.json() == {"received": True}


def test_refund_marks_purchase_but_keeps_grant(client, store, db_session):
    post_event(client, checkout_event(payment_intent="pi_refund"))
    refund = {
        "id": "evt_refund",
        "object": "event",
        "type": "charge.refunded",
        "data": {"object": {"id": "ch_1", "object": "charge", "payment_intent": "pi_refund"}},
    }
    resp = post_event(client, refund)
    assert resp.status_code == 200

    purchase = db_session.query(Purchase).one()
    assert purchase.status == "refunded"
    assert purchase.refunded_at is not None
    assert EntitlementResolver(store).get("buyer@example.com", "market-assassin") is not None


def test_store_outage_rolls_back_so_provider_retries(client, store, db_session, monkeypatch):
    real_set = store.client.set

    def down(*args, **kwargs):
        raise redis.exceptions.ConnectionError("down")

    monkeypatch.setattr(store.client, "set", down)
    resp = post_event(client, checkout_event())
    assert resp.status_code == 503
    assert db_session.query(Purchase).count() == 0

    monkeypatch.setattr(store.client, "set", real_set)
    resp = post_event(client, checkout_event())
    assert resp.json() == {"received": True}
    assert db_session.query(Purchase).count() == 1


def test_recent_event_cache_evicts_oldest():
    cache = RecentEventCache(capacity=2)
    cache.add("a")
    cache.add("b")
    cache.add("c")
    assert not cache.seen("a")
    assert cache.seen("b") and cache.seen("c")


def test_live_secret_checked_first(client, db_session):
    post_event(client, checkout_event(), secret=LIVE_SECRET)
    assert db_session.query(Purchase).one().mode == "live"
