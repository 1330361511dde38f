"""
Entitlement Resolver: which product families an email may use, and at what tier.

    grant:<family>:<email>   {email, family, tier, customerName, createdAt, upgradedAt}
    grant:<family>:all       emails granted this family (admin listing)

Tiers only move up. A grant at or below the current tier returns the stored
record untouched; a higher one overwrites it and stamps upgradedAt.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from app.core import products
from app.core.errors import ValidationError
from app.services.access_tokens import TokenIssuer, normalize_email
from app.services.counter_store import CounterStore

logger = logging.getLogger(__name__)


def _grant_key(family: str, email: str) -> str:
    return f"grant:{family}:{email}"


def _list_key(family: str) -> str:
    return f"grant:{family}:all"


def validate_family(family: Optional[str]) -> products.FamilyConfig:
    found = products.get_family(family or "")
    if found is None:
        raise ValidationError(
            f"Invalid product: {family}. Must be one of: {', '.join(products.FAMILIES)}"
        )
    return found


def validate_tier(family: str, tier: Optional[str]) -> str:
    family_config = validate_family(family)
    tier = tier or family_config.default_tier
    if family_config.tier(tier) is None:
        allowed = ", ".join(t.name for t in family_config.tiers)
        raise ValidationError(f"Invalid tier for {family}: {tier}. Must be one of: {allowed}")
    return tier


def expand_bundle(bundle_id: str) -> List[str]:
    """Families granted by a bundle; empty for an unknown bundle id."""
    return [family for family, _ in products.BUNDLES.get(bundle_id, [])]


def bundle_grants(bundle_id: str) -> List[Tuple[str, str]]:
    return list(products.BUNDLES.get(bundle_id, []))


class EntitlementResolver:
    def __init__(self, store: CounterStore, tokens: Optional[TokenIssuer] = None):
        self.store = store
        self.tokens = tokens or TokenIssuer(store)

    def get(self, email: str, family: str) -> Optional[dict]:
        validate_family(family)
        return self.store.get(_grant_key(family, normalize_email(email)))

    def grant(self, email: str, family: str, tier: Optional[str] = None,
              customer_name: Optional[str] = None) -> dict:
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")
        tier = validate_tier(family, tier)

        existing = self.store.get(_grant_key(family, email))
        if existing is not None:
            if products.tier_rank(family, tier) <= products.tier_rank(family, existing.get("tier")):
                return existing
            record = dict(existing)
            record["tier"] = tier
            record["upgradedAt"] = datetime.utcnow().isoformat() + "Z"
            if customer_name and not record.get("customerName"):
                record["customerName"] = customer_name
            self.store.set(_grant_key(family, email), record)
            logger.info("[Grants] %s upgraded %s: %s -> %s", email, family, existing.get("tier"), tier)
            return record

        record = {
            "email": email,
            "family": family,
            "tier": tier,
            "customerName": customer_name,
            "createdAt": datetime.utcnow().isoformat() + "Z",
            "upgradedAt": None,
        }
        self.store.set(_grant_key(family, email), record)
        self.store.list_append(_list_key(family), email)
        logger.info("[Grants] %s granted %s (%s)", email, family, tier)
        return record

    def grant_bundle(self, email: str, bundle_id: str, customer_name: Optional[str] = None) -> List[dict]:
        members = bundle_grants(bundle_id)
        if not members:
            raise ValidationError(f"Unknown bundle: {bundle_id}")
        return [self.grant(email, family, tier, customer_name) for family, tier in members]

    def resolve(self, email: str) -> Dict[str, str]:
        """family -> tier for every family the email holds."""
        email = normalize_email(email)
        if not email:
            return {}
        grants = {}
        for family in products.FAMILIES:
            record = self.store.get(_grant_key(family, email))
            if record:
                grants[family] = record["tier"]
        return grants

    def revoke(self, email: str, family: str) -> bool:
        family_config = validate_family(family)
        email = normalize_email(email)
        deleted = self.store.delete(_grant_key(family, email))
        self.store.list_remove(_list_key(family), email)
        if family_config.token_scope:
            self.tokens.revoke_for_email(family_config.token_scope, email)
        if deleted:
            logger.info("[Grants] %s revoked %s", email, family)
        return deleted

    def list_all(self, family: str) -> List[dict]:
        validate_family(family)
        grants = []
        for email in dict.fromkeys(self.store.list_range(_list_key(family), 0, -1)):
            record = self.store.get(_grant_key(family, email))
            if record:
                grants.append(record)
        return sorted(grants, key=lambda g: g.get("createdAt") or "", reverse=True)
