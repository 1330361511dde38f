import hashlib
import hmac
import json
import os
import time

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import config
from app.db.base import Base
from app.db.session import get_db
from app.dependencies.services import get_webhook_pipeline
from app.main import app
from app.services.access_tokens import TokenIssuer
from app.services.counter_store import CounterStore, get_store
from app.services.entitlements import EntitlementResolver
from app.services.webhook_pipeline import RECENT_EVENTS, WebhookPipeline

ADMIN_PASSWORD = "correct-horse-battery"
LIVE_SECRET = "whsec_live_secret"
TEST_SECRET = "whsec_test_secret"


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def store(redis_client):
    return CounterStore(redis_client)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def line_items():
    """checkout session id -> Stripe product/price ids the fake fetcher returns."""
    return {}


@pytest.fixture
def sent_notifications():
    return []


@pytest.fixture(autouse=True)
def app_config(monkeypatch):
    monkeypatch.setattr(config, "ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setattr(config, "ADMIN_SECRET", "")
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", LIVE_SECRET)
    monkeypatch.setattr(config, "STRIPE_TEST_WEBHOOK_SECRET", TEST_SECRET)
    monkeypatch.setattr(config, "RESEND_API_KEY", "")
    monkeypatch.setattr(config, "APP_BASE_URL", "https://tools.example.com")
    RECENT_EVENTS.clear()


@pytest.fixture
def client(store, db_session, line_items, sent_notifications):
    def override_get_db():
        yield db_session

    def override_pipeline():
        tokens = TokenIssuer(store)
        return WebhookPipeline(
            db_session,
            EntitlementResolver(store, tokens),
            tokens,
            line_item_fetcher=lambda session_id, mode: line_items.get(session_id, []),
            notifier=lambda recipient, template, payload: sent_notifications.append(
                (recipient, template, payload)
            ) or True,
        )

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_webhook_pipeline] = override_pipeline
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def admin_headers(ip: str = "10.0.0.1") -> dict:
    return {"X-Admin-Password": ADMIN_PASSWORD, "X-Forwarded-For": ip}


def sign_payload(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_event(
    event_id: str = "evt_1",
    session_id: str = "cs_test_1",
    email: str = "buyer@example.com",
    metadata: dict = None,
    payment_intent: str = "pi_1",
    amount_total: int = 29700,
) -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "customer_email": email,
                "customer_details": {"email": email, "name": "Pat Buyer"},
                "metadata": metadata if metadata is not None else {"product_id": "market-assassin-standard"},
                "payment_intent": payment_intent,
                "amount_total": amount_total,
                "currency": "usd",
            }
        },
    }


def post_event(client, event: dict, secret: str = LIVE_SECRET):
    payload = json.dumps(event)
    return client.post(
        "/webhooks/payment",
        content=payload,
        headers={"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"},
    )
