"""
Error taxonomy for the access layer.

Routes and services raise these; app.main registers the handlers that turn them
into `{"success": false, "error": ...}` JSON bodies.
"""
import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AccessError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers


class ValidationError(AccessError):
    """Missing or malformed input. The message names the offending field."""
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(AccessError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(AccessError):
    # Lookups of unknown codes/tokens answer 200 with success=false
    status_code = status.HTTP_200_OK


class RateLimited(AccessError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, result):
        retry_after = max(0, int(result.reset_at - result.checked_at))
        super().__init__(
            message,
            headers={
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": str(result.remaining),
                "X-RateLimit-Reset": str(int(result.reset_at)),
                "Retry-After": str(retry_after),
            },
        )
        self.result = result


class Conflict(AccessError):
    """Idempotency key already seen. Webhook callers answer 200 with duplicate=true."""
    status_code = status.HTTP_200_OK


class StoreUnavailable(AccessError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class UpstreamVerificationFailed(AccessError):
    status_code = status.HTTP_400_BAD_REQUEST


def _error_body(message: str) -> dict:
    return {"success": False, "error": message}


async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    if isinstance(exc, StoreUnavailable):
        logger.error("[Store] %s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message),
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        fields.append(".".join(loc) or "body")
    message = "Missing or invalid field: " + ", ".join(dict.fromkeys(fields))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(message))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[Unhandled] %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccessError, access_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
