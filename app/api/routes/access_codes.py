from fastapi import APIRouter, Depends, Query, Request
from typing import Optional

from app.core import config
from app.core.errors import NotFound, ValidationError
from app.dependencies.auth import authorize_admin, require_admin
from app.dependencies.services import get_access_codes
from app.schemas.access import AccessCodeRequest
from app.services.access_codes import AccessCodeManager, CODE_ALREADY_USED
from app.services.counter_store import CounterStore, get_store
from app.services.notifications import send_notification

router = APIRouter()


def _access_link(code: str) -> str:
    return f"{config.APP_BASE_URL}/access/{code}"


@router.get("")
def get_access_codes_route(
    request: Request,
    code: Optional[str] = Query(None),
    admin: Optional[str] = Query(None),
    password: Optional[str] = Query(None),
    codes: AccessCodeManager = Depends(get_access_codes),
    store: CounterStore = Depends(get_store),
):
    """Validate one code, or list every code with ?admin=true."""
    if admin == "true":
        authorize_admin(request, store, request.headers.get("x-admin-password") or password)
        return {"success": True, "codes": codes.list_all()}

    if not code:
        raise ValidationError("Code parameter required")

    result = codes.validate(code)
    body = {"success": result["valid"], "valid": result["valid"]}
    if not result["valid"]:
        body["error"] = result["error"]
    record = result.get("accessCode")
    if record is not None:
        body["accessCode"] = {
            "email": record["email"],
            "companyName": record.get("companyName"),
            "used": record["used"],
        }
    return body


@router.post("")
def post_access_codes_route(
    body: AccessCodeRequest,
    request: Request,
    codes: AccessCodeManager = Depends(get_access_codes),
    store: CounterStore = Depends(get_store),
):
    """action=create (admin) issues a code; action=use consumes one."""
    if body.action == "create":
        authorize_admin(request, store, request.headers.get("x-admin-password") or body.password)
        if not body.email:
            raise ValidationError("Email is required")
        record = codes.create(body.email, body.companyName, body.code)
        link = _access_link(record["code"])
        send_notification(record["email"], "access_code", {
            "customerName": record.get("companyName"),
            "code": record["code"],
            "accessLink": link,
        })
        return {"success": True, "accessCode": record, "accessLink": link}

    if body.action == "use":
        if not body.code:
            raise ValidationError("Code is required")
        result = codes.validate(body.code)
        if not result["valid"]:
            raise NotFound(result["error"])
        if not codes.consume(body.code):
            raise NotFound(CODE_ALREADY_USED)
        return {"success": True}

    raise ValidationError("Invalid action")


@router.delete("", dependencies=[Depends(require_admin)])
def delete_access_code_route(
    code: Optional[str] = Query(None),
    codes: AccessCodeManager = Depends(get_access_codes),
):
    if not code:
        raise ValidationError("Code is required")
    return {"success": codes.delete(code)}
