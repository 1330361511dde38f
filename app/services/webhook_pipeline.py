"""
Payment webhook ingestion: verify -> dedupe -> apply.

Stripe delivers at least once, so the purchase row's unique provider_session_id
is the idempotency key. A bounded in-memory cache of recent event ids answers
most replays before touching the database.
"""
import json
import logging
from collections import OrderedDict
from decimal import Decimal
from threading import Lock
from typing import Callable, List, Optional, Tuple

import stripe
from sqlalchemy.orm import Session

from app.core import config, products
from app.core.errors import Conflict, StoreUnavailable, UpstreamVerificationFailed, ValidationError
from app.services import purchases
from app.services.access_profiles import mirror_access_flags
from app.services.access_tokens import TokenIssuer, normalize_email
from app.services.entitlements import EntitlementResolver, validate_tier
from app.services.notifications import send_notification

logger = logging.getLogger(__name__)

# token scope -> (link path, label in the customer email)
TOKEN_LINKS = {
    "ma": ("/api/ma-access", "Federal Market Assassin"),
    "db": ("/api/database-access", "Federal Contractor Database"),
}


class RecentEventCache:
    """Insertion-ordered set of event ids; the oldest are evicted past capacity."""

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._events = OrderedDict()
        self._lock = Lock()

    def seen(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._events

    def add(self, event_id: str) -> None:
        with self._lock:
            self._events[event_id] = True
            self._events.move_to_end(event_id)
            while len(self._events) > self.capacity:
                self._events.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


RECENT_EVENTS = RecentEventCache(config.WEBHOOK_DEDUPE_CAPACITY)


def verify_signature(payload: bytes, signature: Optional[str]) -> Tuple[dict, str]:
    """
    Check the Stripe-Signature header against the live secret, then the test secret.
    Returns the parsed event and the mode ("live" or "test") whose secret matched.
    """
    if not signature:
        raise UpstreamVerificationFailed("No signature")

    for mode, secret in (("live", config.STRIPE_WEBHOOK_SECRET), ("test", config.STRIPE_TEST_WEBHOOK_SECRET)):
        if not secret:
            continue
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except (stripe.SignatureVerificationError, ValueError):
            continue
        if mode == "test":
            logger.info("[Webhook] Verified with test webhook secret")
        return json.loads(payload), mode

    logger.error("[Webhook] Signature verification failed")
    raise UpstreamVerificationFailed("Invalid signature")


def fetch_line_item_refs(session_id: str, mode: str) -> List[str]:
    """Stripe product and price ids on a checkout session."""
    api_key = config.STRIPE_TEST_SECRET_KEY if mode == "test" else config.STRIPE_SECRET_KEY
    try:
        line_items = stripe.checkout.Session.list_line_items(
            session_id, api_key=api_key, expand=["data.price.product"]
        )
    except stripe.StripeError as e:
        logger.error("[Webhook] Could not fetch line items for %s: %s", session_id, e)
        raise

    refs = []
    for item in line_items.data:
        price = item.price
        if price is None:
            continue
        product = price.product
        refs.append(product if isinstance(product, str) else product.id)
        refs.append(price.id)
    return refs


class WebhookPipeline:
    def __init__(
        self,
        db: Session,
        resolver: EntitlementResolver,
        tokens: TokenIssuer,
        recent_events: RecentEventCache = RECENT_EVENTS,
        line_item_fetcher: Callable[[str, str], List[str]] = fetch_line_item_refs,
        notifier: Callable[[str, str, dict], bool] = send_notification,
    ):
        self.db = db
        self.resolver = resolver
        self.tokens = tokens
        self.recent_events = recent_events
        self.line_item_fetcher = line_item_fetcher
        self.notifier = notifier

    def process(self, payload: bytes, signature: Optional[str]) -> dict:
        event, mode = verify_signature(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type")
        logger.info("[Webhook] Received %s (%s, %s)", event_type, event_id, mode)

        if event_id and self.recent_events.seen(event_id):
            logger.info("[Webhook] Event %s already processed", event_id)
            return {"received": True, "duplicate": True}

        obj = (event.get("data") or {}).get("object") or {}
        if event_type == "checkout.session.completed":
            result = self._handle_checkout_completed(obj, mode, event_id)
        elif event_type == "charge.refunded":
            result = self._handle_charge_refunded(obj)
        else:
            result = {"received": True}

        if event_id:
            self.recent_events.add(event_id)
        return result

    def _resolve_product(self, session: dict, mode: str) -> Optional[products.CatalogProduct]:
        metadata = session.get("metadata") or {}
        bundle_id = metadata.get("bundle_id")
        if bundle_id and bundle_id in products.BUNDLES:
            return products.CATALOG.get(bundle_id) or products.CatalogProduct(
                bundle_id, bundle_id, 0, bundle_id=bundle_id
            )

        product_id = metadata.get("product_id")
        if product_id:
            found = products.product_for_ref(product_id)
            if found:
                return found
            family = products.get_family(product_id)
            if family:
                try:
                    tier = validate_tier(product_id, metadata.get("tier"))
                except ValidationError:
                    logger.warning("[Webhook] Unknown tier %r for %s", metadata.get("tier"), product_id)
                    return None
                return products.CatalogProduct(product_id, family.display_name, 0, family=product_id, tier=tier)

        for ref in self.line_item_fetcher(session["id"], mode):
            found = products.product_for_ref(ref)
            if found:
                return found
        return None

    def _handle_checkout_completed(self, session: dict, mode: str, event_id: Optional[str]) -> dict:
        session_id = session.get("id")
        if not session_id:
            raise ValidationError("Missing field: data.object.id")

        if purchases.find_by_session(self.db, session_id) is not None:
            logger.info("[Webhook] Session %s already recorded", session_id)
            return {"received": True, "duplicate": True}

        details = session.get("customer_details") or {}
        email = normalize_email(session.get("customer_email") or details.get("email"))
        if not email:
            raise ValidationError("Missing field: customer_email")
        customer_name = details.get("name")

        product = self._resolve_product(session, mode)
        if product is None:
            logger.info("[Webhook] Session %s has no catalog product, ignoring", session_id)
            return {"received": True}

        if product.bundle_id:
            members = products.BUNDLES[product.bundle_id]
        else:
            members = [(product.family, product.tier)]

        amount_total = session.get("amount_total")
        links = {}
        try:
            purchases.record_purchase(
                self.db,
                email=email,
                provider="stripe",
                provider_session_id=session_id,
                provider_payment_id=session.get("payment_intent"),
                provider_event_id=event_id,
                mode=mode,
                product_id=product.product_id,
                product_name=product.name,
                tier=product.tier,
                bundle_id=product.bundle_id,
                amount_paid=Decimal(amount_total) / Decimal(100) if amount_total is not None else None,
                currency=(session.get("currency") or "usd").upper(),
                status="completed",
            )
            for family, tier in members:
                self.resolver.grant(email, family, tier, customer_name)
                scope = products.FAMILIES[family].token_scope
                if scope:
                    links[TOKEN_LINKS[scope][1]] = self._link_for(scope, email, customer_name)
            mirror_access_flags(self.db, email, self.resolver.resolve(email))
            self.db.commit()
        except Conflict:
            return {"received": True, "duplicate": True}
        except StoreUnavailable:
            self.db.rollback()
            logger.error("[Webhook] Store unavailable while applying %s; provider will retry", session_id)
            raise

        logger.info("[Webhook] %s granted %s via %s", email, members, product.product_id)

        self.notifier(email, "purchase_access", {
            "customerName": customer_name,
            "productName": product.name,
            "tools": [products.get_tier(f, t).display_name for f, t in members],
            "links": links,
        })
        return {"received": True}

    def _link_for(self, scope: str, email: str, customer_name: Optional[str]) -> str:
        existing = self.tokens.lookup_email(scope, email)
        token = existing["token"] if existing else self.tokens.issue(scope, email, customer_name)["token"]
        return f"{config.APP_BASE_URL}{TOKEN_LINKS[scope][0]}/{token}"

    def _handle_charge_refunded(self, charge: dict) -> dict:
        payment_id = charge.get("payment_intent")
        if not payment_id:
            return {"received": True}
        count = purchases.mark_refunded(self.db, payment_id)
        logger.info("[Webhook] Marked %s purchase(s) refunded for %s", count, payment_id)
        return {"received": True}
