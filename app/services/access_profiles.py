"""
Mirror of entitlement grants into user_profiles access flags.

Flags are rebuilt from the resolved grants, so the table always reflects the
current tiers (including removal after a revoke).
"""
from typing import Dict, List

from sqlalchemy.orm import Session

from app.core import products
from app.models.access_profile import AccessProfile


def flags_for_grants(grants: Dict[str, str]) -> Dict[str, bool]:
    flags = {flag: False for flag in products.ACCESS_FLAGS}
    for family, tier in grants.items():
        for flag in products.flags_for_tier(family, tier):
            flags[flag] = True
    return flags


def mirror_access_flags(db: Session, email: str, grants: Dict[str, str]) -> AccessProfile:
    """Write flags for `email` to the session. The caller commits."""
    profile = db.query(AccessProfile).filter(AccessProfile.email == email).first()
    if profile is None:
        profile = AccessProfile(email=email)
        db.add(profile)
    for flag, value in flags_for_grants(grants).items():
        setattr(profile, flag, value)
    return profile


def tools_for_flags(flags: Dict[str, bool]) -> List[dict]:
    """Activation page tool list, one entry per flag."""
    names = {
        tier.access_flag: tier.display_name
        for family in products.FAMILIES.values()
        for tier in family.tiers
    }
    return [{"name": names[flag], "key": flag, "active": flags.get(flag, False)} for flag in products.ACCESS_FLAGS]
