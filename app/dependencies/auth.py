from fastapi import Header, Query, Request, Depends
from typing import Optional

from app.core import config
from app.core.errors import Unauthorized
from app.services.counter_store import CounterStore, get_store
from app.services.rate_limiter import RateLimiter, get_client_ip
from app.utils.admin_auth import verify


def authorize_admin(request: Request, store: CounterStore, supplied: Optional[str]) -> None:
    """
    Rate limit the caller's IP, then check the supplied secret against
    ADMIN_PASSWORD or ADMIN_SECRET. Every attempt counts against the limit.
    """
    limiter = RateLimiter(store)
    limiter.enforce(
        limiter.check_admin(get_client_ip(request)),
        "Too many attempts. Please try again later.",
    )
    if not (verify(supplied, config.ADMIN_PASSWORD) or verify(supplied, config.ADMIN_SECRET)):
        print(f"[AUTH] Rejected admin request from {get_client_ip(request)} to {request.url.path}")
        raise Unauthorized("Invalid admin password")


def require_admin(
    request: Request,
    x_admin_password: Optional[str] = Header(None),
    password: Optional[str] = Query(None),
    store: CounterStore = Depends(get_store),
) -> None:
    """Dependency for admin routes: X-Admin-Password header, or ?password= for links opened by hand."""
    authorize_admin(request, store, x_admin_password or password)
