from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse
from typing import Optional

from app.api.routes.activate import set_identity_cookie
from app.core.errors import Unauthorized, ValidationError
from app.dependencies.services import get_resolver, get_token_issuer
from app.schemas.access import VerifyTokenRequest
from app.services.access_tokens import TokenIssuer, normalize_email
from app.services.entitlements import EntitlementResolver

router = APIRouter()

# scope -> (cookie, unlocked page, locked page)
LINK_TARGETS = {
    "ma": ("ma_access_email", "/federal-market-assassin", "/market-assassin-locked"),
    "db": ("db_access_email", "/database.html", "/database-locked"),
}


def _open_link(scope: str, token: str, tokens: TokenIssuer) -> RedirectResponse:
    cookie, unlocked, locked = LINK_TARGETS[scope]
    record = tokens.resolve(scope, token)
    if record is None:
        return RedirectResponse(url=f"{locked}?error=invalid", status_code=307)
    response = RedirectResponse(url=unlocked, status_code=307)
    set_identity_cookie(response, cookie, record["email"], httponly=True)
    return response


@router.get("/ma-access/{token}")
def market_assassin_link(token: str, tokens: TokenIssuer = Depends(get_token_issuer)):
    return _open_link("ma", token, tokens)


@router.get("/database-access/{token}")
def database_link(token: str, tokens: TokenIssuer = Depends(get_token_issuer)):
    return _open_link("db", token, tokens)


@router.post("/verify-access")
def verify_access_token(body: VerifyTokenRequest, tokens: TokenIssuer = Depends(get_token_issuer)):
    """Token typed into the unlock form instead of opened as a link."""
    if body.scope not in LINK_TARGETS:
        raise ValidationError(f"Invalid scope: {body.scope}")
    record = tokens.resolve(body.scope, body.token.strip())
    if record is None:
        raise Unauthorized("Invalid access code")
    response = JSONResponse(content={"success": True, "email": record["email"]})
    set_identity_cookie(response, LINK_TARGETS[body.scope][0], record["email"], httponly=True)
    return response


@router.get("/entitlements")
def get_entitlements(
    email: Optional[str] = Query(None),
    resolver: EntitlementResolver = Depends(get_resolver),
):
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")
    return {"success": True, "email": email, "grants": resolver.resolve(email)}
