import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core import config, products
from app.db.session import get_db
from app.dependencies.services import get_resolver
from app.schemas.access import ActivateRequest
from app.services import purchases
from app.services.access_profiles import flags_for_grants, mirror_access_flags, tools_for_flags
from app.services.access_tokens import normalize_email
from app.services.entitlements import EntitlementResolver, expand_bundle

logger = logging.getLogger(__name__)

router = APIRouter()


def set_identity_cookie(response, name: str, value: str, httponly: bool = False) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=config.COOKIE_MAX_AGE,
        path="/",
        secure=config.COOKIE_SECURE,
        httponly=httponly,
        samesite=config.COOKIE_SAMESITE,
    )


def _families_from_purchases(rows) -> set:
    families = set()
    for purchase in rows:
        product = products.product_for_ref(purchase.product_id)
        if product is not None:
            if product.bundle_id:
                families.update(expand_bundle(product.bundle_id))
            else:
                families.add(product.family)
        elif products.get_family(purchase.product_id):
            # Checkout metadata named the family directly
            families.add(purchase.product_id)
    return families


@router.post("")
def activate(
    body: ActivateRequest,
    db: Session = Depends(get_db),
    resolver: EntitlementResolver = Depends(get_resolver),
):
    """
    Activate tools for a buyer by email. Current grants decide which tools are on;
    a license key / receipt id narrows them to the families that purchase covers.
    Sets access_email plus one cookie per active tool flag.
    """
    email = normalize_email(body.email)
    current = resolver.resolve(email)
    grants = current
    if body.licenseKey:
        families = _families_from_purchases(purchases.completed_for_email(db, email, body.licenseKey))
        grants = {family: tier for family, tier in current.items() if family in families}

    if not grants:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "No purchases found for this email/key", "tools": []},
        )

    mirror_access_flags(db, email, current)
    db.commit()

    tools = [tool for tool in tools_for_flags(flags_for_grants(grants)) if tool["active"]]
    response = JSONResponse(content={"success": True, "tools": tools})
    set_identity_cookie(response, "access_email", email)
    for tool in tools:
        set_identity_cookie(response, tool["key"], "true")

    logger.info("[Activate] Activated access for %s: %s", email, ", ".join(t["key"] for t in tools))
    return response
