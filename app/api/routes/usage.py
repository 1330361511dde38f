from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core import products
from app.dependencies.services import get_rate_limiter, get_usage_tracker
from app.schemas.access import UsageRequest
from app.services.entitlements import validate_family
from app.services.rate_limiter import RateLimiter, get_client_ip
from app.services.usage_quota import UsageQuotaTracker

router = APIRouter()


def _throttle(request: Request, body: UsageRequest, limiter: RateLimiter):
    if body.product == products.MARKET_ASSASSIN:
        result = limiter.check_report(body.email)
    elif body.product == products.CONTENT_GENERATOR:
        result = limiter.check_content(body.email)
    else:
        result = limiter.check_ip(get_client_ip(request))
    return limiter.enforce(result, "Daily generation limit reached. Please try again tomorrow.")


@router.post("")
def check_usage(body: UsageRequest, tracker: UsageQuotaTracker = Depends(get_usage_tracker)):
    """Read-only quota check for the current month."""
    return {"success": True, **tracker.check(body.email, body.product)}


@router.post("/increment")
def increment_usage(
    body: UsageRequest,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    tracker: UsageQuotaTracker = Depends(get_usage_tracker),
):
    """
    Gate one metered generation: per-email daily rate limit first, then the
    monthly quota for the caller's tier. Returns 403 without a grant and 429
    once the quota is used up.
    """
    validate_family(body.product)
    rate = _throttle(request, body, limiter)
    result = tracker.increment(body.email, body.product)

    if not result["success"]:
        if result["tier"] is None:
            error, status_code = "No access to this product", 403
        else:
            error, status_code = "Monthly report limit reached. Upgrade for unlimited reports.", 429
        return JSONResponse(status_code=status_code, content={**result, "error": error})

    tracker.track_generation(body.email)
    return {**result, "rateLimit": rate.to_dict()}


@router.post("/release")
def release_usage(body: UsageRequest, tracker: UsageQuotaTracker = Depends(get_usage_tracker)):
    """Return one unit after a generation failed downstream."""
    return {"success": True, "currentUsage": tracker.release(body.email, body.product)}
