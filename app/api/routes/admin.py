"""
Admin endpoints. Every route is behind require_admin (rate limit, then secret check).
"""
import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.core import config, products
from app.core.errors import NotFound, ValidationError
from app.db.session import get_db
from app.dependencies.auth import require_admin
from app.dependencies.services import get_resolver, get_token_issuer, get_usage_tracker
from app.schemas.access import GrantRequest, RevokeRequest, TokenCreateRequest
from app.services import purchases
from app.services.access_profiles import mirror_access_flags
from app.services.access_tokens import SCOPES, TokenIssuer, normalize_email
from app.services.entitlements import EntitlementResolver, validate_family
from app.services.usage_quota import UsageQuotaTracker
from app.services.webhook_pipeline import TOKEN_LINKS

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])

# product names accepted by POST /tokens
TOKEN_PRODUCTS = {
    "market-assassin": ("ma",),
    "database": ("db",),
    "both": ("ma", "db"),
}


@router.post("/verify-password")
def verify_password():
    """Reaching the handler means the dependency accepted the password."""
    return {"success": True}


@router.post("/grant")
def grant_access(
    body: GrantRequest,
    db: Session = Depends(get_db),
    resolver: EntitlementResolver = Depends(get_resolver),
    tokens: TokenIssuer = Depends(get_token_issuer),
):
    email = normalize_email(body.email)
    if body.product in products.BUNDLES:
        records = resolver.grant_bundle(email, body.product, body.customerName)
        families = [r["family"] for r in records]
    else:
        record = resolver.grant(email, body.product, body.tier, body.customerName)
        records = [record]
        families = [body.product]

    links = {}
    for family in families:
        scope = products.FAMILIES[family].token_scope
        if scope:
            pointer = tokens.lookup_email(scope, email) or tokens.issue(scope, email, body.customerName)
            links[scope] = pointer["token"]

    mirror_access_flags(db, email, resolver.resolve(email))
    db.commit()
    logger.info("[Admin] Granted %s to %s", body.product, email)
    return {"success": True, "grants": records, "tokens": links}


@router.post("/revoke")
def revoke_access(
    body: RevokeRequest,
    db: Session = Depends(get_db),
    resolver: EntitlementResolver = Depends(get_resolver),
):
    email = normalize_email(body.email)
    if not resolver.revoke(email, body.product):
        raise NotFound(f"No {body.product} access found for {email}")
    mirror_access_flags(db, email, resolver.resolve(email))
    db.commit()
    logger.info("[Admin] Revoked %s from %s", body.product, email)
    return {"success": True, "message": f"Access revoked for {email}"}


@router.get("/access")
def list_access(
    product: str = Query(...),
    resolver: EntitlementResolver = Depends(get_resolver),
):
    grants = resolver.list_all(product)
    return {"success": True, "product": product, "count": len(grants), "grants": grants}


@router.post("/tokens")
def create_tokens(body: TokenCreateRequest, tokens: TokenIssuer = Depends(get_token_issuer)):
    scopes = TOKEN_PRODUCTS.get(body.product)
    if scopes is None:
        raise ValidationError(f"Invalid product: {body.product}. Must be one of: {', '.join(TOKEN_PRODUCTS)}")

    issued = {}
    for scope in scopes:
        record = tokens.issue(scope, body.email, body.customerName)
        issued[scope] = {
            "token": record["token"],
            "accessLink": f"{config.APP_BASE_URL}{TOKEN_LINKS[scope][0]}/{record['token']}",
        }
    return {"success": True, "email": normalize_email(body.email), "tokens": issued}


@router.get("/tokens")
def check_tokens(
    email: Optional[str] = Query(None),
    scope: Optional[str] = Query(None),
    tokens: TokenIssuer = Depends(get_token_issuer),
):
    """One email's current tokens, or every holder of a scope."""
    if email:
        found = {s: tokens.lookup_email(s, email) for s in SCOPES}
        return {"success": True, "email": normalize_email(email), "tokens": found}
    if scope:
        holders = tokens.list_all(scope)
        return {"success": True, "scope": scope, "count": len(holders), "holders": holders}
    raise ValidationError("email or scope is required")


@router.delete("/tokens/{scope}/{token}")
def revoke_token(scope: str, token: str, tokens: TokenIssuer = Depends(get_token_issuer)):
    if not tokens.revoke(scope, token):
        raise NotFound("Token not found")
    return {"success": True}


@router.get("/purchases")
def list_purchases(limit: int = Query(500, ge=1, le=500), db: Session = Depends(get_db)):
    rows = purchases.list_recent(db, limit)
    return {"success": True, "count": len(rows), "purchases": [purchases.serialize(p) for p in rows]}


@router.get("/usage")
def usage_stats(
    email: str = Query(...),
    product: str = Query(products.MARKET_ASSASSIN),
    tracker: UsageQuotaTracker = Depends(get_usage_tracker),
):
    validate_family(product)
    return {
        "success": True,
        "email": normalize_email(email),
        "usage": tracker.check(email, product),
        "lifetimeGenerations": tracker.abuse_count(email),
    }
