"""
Product catalog: families, tiers, bundles and payment-provider references.

Tier rank, monthly quota, display name and the user_profiles flag a tier sets all
live here so services never branch on product names.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.core import config

logger = logging.getLogger(__name__)

UNLIMITED = -1  # -1 means unlimited

MARKET_ASSASSIN = "market-assassin"
CONTENT_GENERATOR = "content-generator"
CONTRACTOR_DATABASE = "contractor-database"
RECOMPETE = "recompete"
OPPORTUNITY_HUNTER_PRO = "opportunity-hunter-pro"


@dataclass(frozen=True)
class TierConfig:
    name: str
    rank: int
    display_name: str
    monthly_quota: int
    access_flag: str
    features: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FamilyConfig:
    family: str
    display_name: str
    tiers: Tuple[TierConfig, ...]
    token_scope: Optional[str] = None

    @property
    def default_tier(self) -> str:
        return self.tiers[0].name

    def tier(self, name: str) -> Optional[TierConfig]:
        for tier in self.tiers:
            if tier.name == name:
                return tier
        return None


@dataclass(frozen=True)
class CatalogProduct:
    """A purchasable item: either one family/tier or a bundle."""
    product_id: str
    name: str
    price: int
    family: Optional[str] = None
    tier: Optional[str] = None
    bundle_id: Optional[str] = None
    provider_refs: Tuple[str, ...] = field(default_factory=tuple)


FAMILIES: Dict[str, FamilyConfig] = {
    MARKET_ASSASSIN: FamilyConfig(
        family=MARKET_ASSASSIN,
        display_name="Federal Market Assassin",
        token_scope="ma",
        tiers=(
            TierConfig("standard", 1, "Federal Market Assassin", 30, "access_assassin_standard",
                       ("Market Analytics", "Government Buyers", "OSBP Contacts", "IDV Contracts", "Similar Awards")),
            TierConfig("premium", 2, "Market Assassin Premium", UNLIMITED, "access_assassin_premium",
                       ("Market Analytics", "Government Buyers", "OSBP Contacts", "IDV Contracts", "Similar Awards",
                        "Subcontracting", "Tribal Contracting", "Agency Pain Points")),
        ),
    ),
    CONTENT_GENERATOR: FamilyConfig(
        family=CONTENT_GENERATOR,
        display_name="Content Reaper",
        tiers=(
            TierConfig("content-engine", 1, "Content Reaper", UNLIMITED, "access_content_standard"),
            TierConfig("full-fix", 2, "Content Generator Full Fix", UNLIMITED, "access_content_full_fix"),
        ),
    ),
    CONTRACTOR_DATABASE: FamilyConfig(
        family=CONTRACTOR_DATABASE,
        display_name="Federal Contractor Database",
        token_scope="db",
        tiers=(
            TierConfig("standard", 1, "Federal Contractor Database", UNLIMITED, "access_contractor_db"),
        ),
    ),
    RECOMPETE: FamilyConfig(
        family=RECOMPETE,
        display_name="Recompete Contracts Tracker",
        tiers=(
            TierConfig("standard", 1, "Recompete Contracts Tracker", UNLIMITED, "access_recompete"),
        ),
    ),
    OPPORTUNITY_HUNTER_PRO: FamilyConfig(
        family=OPPORTUNITY_HUNTER_PRO,
        display_name="Opportunity Hunter Pro",
        tiers=(
            TierConfig("pro", 1, "Opportunity Hunter Pro", UNLIMITED, "access_hunter_pro"),
        ),
    ),
}

# bundle id -> [(family, tier)]
BUNDLES: Dict[str, List[Tuple[str, str]]] = {
    "govcon-starter-bundle": [
        (RECOMPETE, "standard"),
        (CONTRACTOR_DATABASE, "standard"),
        (OPPORTUNITY_HUNTER_PRO, "pro"),
    ],
    "ultimate-govcon-bundle": [
        (CONTRACTOR_DATABASE, "standard"),
        (RECOMPETE, "standard"),
        (MARKET_ASSASSIN, "standard"),
        (CONTENT_GENERATOR, "content-engine"),
    ],
    "complete-govcon-bundle": [
        (CONTENT_GENERATOR, "content-engine"),
        (CONTRACTOR_DATABASE, "standard"),
        (RECOMPETE, "standard"),
        (MARKET_ASSASSIN, "premium"),
    ],
}

CATALOG: Dict[str, CatalogProduct] = {
    p.product_id: p
    for p in (
        CatalogProduct("market-assassin-standard", "Market Assassin Standard", 297,
                       family=MARKET_ASSASSIN, tier="standard",
                       provider_refs=("1227284", "prod_TiOjPpnyLnO3eb")),
        CatalogProduct("market-assassin-premium", "Market Assassin Premium", 497,
                       family=MARKET_ASSASSIN, tier="premium", provider_refs=("1227287",)),
        CatalogProduct("content-generator-content-engine", "AI Content Generator", 397,
                       family=CONTENT_GENERATOR, tier="content-engine", provider_refs=("1227179",)),
        CatalogProduct("content-generator-full-fix", "AI Content Generator Full Fix", 597,
                       family=CONTENT_GENERATOR, tier="full-fix", provider_refs=("1227185",)),
        CatalogProduct("contractor-database", "Contractor Database", 497,
                       family=CONTRACTOR_DATABASE, tier="standard", provider_refs=("1227200",)),
        CatalogProduct("recompete", "Recompete Contracts", 397,
                       family=RECOMPETE, tier="standard", provider_refs=("1227279",)),
        CatalogProduct("opportunity-hunter-pro", "Opportunity Hunter Pro", 49,
                       family=OPPORTUNITY_HUNTER_PRO, tier="pro", provider_refs=("1227153",)),
        CatalogProduct("govcon-starter-bundle", "GovCon Starter Bundle", 697,
                       bundle_id="govcon-starter-bundle", provider_refs=("1227736",)),
        CatalogProduct("ultimate-govcon-bundle", "Ultimate GovCon Bundle", 997,
                       bundle_id="ultimate-govcon-bundle", provider_refs=("1227743",)),
        CatalogProduct("complete-govcon-bundle", "Complete GovCon Bundle", 1497,
                       bundle_id="complete-govcon-bundle", provider_refs=("1227745",)),
    )
}

PROVIDER_REFS: Dict[str, str] = {
    ref: product.product_id for product in CATALOG.values() for ref in product.provider_refs
}

# user_profiles columns, in the order the activation page lists tools
ACCESS_FLAGS: List[str] = [
    "access_hunter_pro",
    "access_content_standard",
    "access_content_full_fix",
    "access_assassin_standard",
    "access_assassin_premium",
    "access_recompete",
    "access_contractor_db",
]


def _apply_overrides() -> None:
    """Apply TIER_QUOTAS_JSON / BUNDLES_JSON from the environment, if set."""
    if config.TIER_QUOTAS_JSON:
        overrides = json.loads(config.TIER_QUOTAS_JSON)
        for family, quotas in overrides.items():
            current = FAMILIES.get(family)
            if current is None:
                logger.warning("[Catalog] Ignoring quota override for unknown family %s", family)
                continue
            tiers = tuple(
                TierConfig(t.name, t.rank, t.display_name, int(quotas.get(t.name, t.monthly_quota)),
                           t.access_flag, t.features)
                for t in current.tiers
            )
            FAMILIES[family] = FamilyConfig(current.family, current.display_name, tiers, current.token_scope)
    if config.BUNDLES_JSON:
        for bundle_id, members in json.loads(config.BUNDLES_JSON).items():
            BUNDLES[bundle_id] = [(m[0], m[1]) for m in members]


_apply_overrides()


def get_family(family: str) -> Optional[FamilyConfig]:
    return FAMILIES.get(family)


def get_tier(family: str, tier: str) -> Optional[TierConfig]:
    found = FAMILIES.get(family)
    return found.tier(tier) if found else None


def tier_rank(family: str, tier: Optional[str]) -> int:
    """Rank of a tier inside its family; 0 for no tier or an unknown one."""
    if not tier:
        return 0
    found = get_tier(family, tier)
    return found.rank if found else 0


def get_monthly_quota(family: str, tier: Optional[str]) -> int:
    found = get_tier(family, tier) if tier else None
    return found.monthly_quota if found else 0


def flags_for_tier(family: str, tier: str) -> List[str]:
    """Flags a tier turns on: its own plus every lower tier in the family."""
    found = get_tier(family, tier)
    if not found:
        return []
    return [t.access_flag for t in FAMILIES[family].tiers if t.rank <= found.rank]


def product_for_ref(ref: Optional[str]) -> Optional[CatalogProduct]:
    """Catalog entry for a product id or a provider reference (variant, Stripe product/price)."""
    if not ref:
        return None
    ref = str(ref)
    if ref in CATALOG:
        return CATALOG[ref]
    product_id = PROVIDER_REFS.get(ref)
    return CATALOG.get(product_id) if product_id else None
