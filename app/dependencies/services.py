"""Per-request service construction for route dependencies."""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.access_codes import AccessCodeManager
from app.services.access_tokens import TokenIssuer
from app.services.counter_store import CounterStore, get_store
from app.services.entitlements import EntitlementResolver
from app.services.rate_limiter import RateLimiter
from app.services.usage_quota import UsageQuotaTracker
from app.services.webhook_pipeline import WebhookPipeline


def get_rate_limiter(store: CounterStore = Depends(get_store)) -> RateLimiter:
    return RateLimiter(store)


def get_access_codes(store: CounterStore = Depends(get_store)) -> AccessCodeManager:
    return AccessCodeManager(store)


def get_token_issuer(store: CounterStore = Depends(get_store)) -> TokenIssuer:
    return TokenIssuer(store)


def get_resolver(store: CounterStore = Depends(get_store)) -> EntitlementResolver:
    return EntitlementResolver(store)


def get_usage_tracker(store: CounterStore = Depends(get_store)) -> UsageQuotaTracker:
    return UsageQuotaTracker(store)


def get_webhook_pipeline(
    db: Session = Depends(get_db),
    store: CounterStore = Depends(get_store),
) -> WebhookPipeline:
    tokens = TokenIssuer(store)
    return WebhookPipeline(db, EntitlementResolver(store, tokens), tokens)
