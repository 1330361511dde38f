"""
Single-use invite codes.

Record:   access:<CODE>        {code, email, companyName, createdAt, usedAt, used}
Claim:    access:<CODE>:claim  written with SET NX by the one consume() that wins
Listing:  access:all           codes in creation order
"""
import logging
import secrets
from datetime import datetime
from typing import List, Optional

from app.core.errors import ValidationError
from app.services.counter_store import CounterStore

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I, O, 0, 1
CODE_LENGTH = 12
ALL_CODES_KEY = "access:all"

INVALID_CODE = "Invalid access code"
CODE_ALREADY_USED = "This access code has already been used"


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _record_key(code: str) -> str:
    return f"access:{code}"


def _claim_key(code: str) -> str:
    return f"access:{code}:claim"


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


class AccessCodeManager:
    def __init__(self, store: CounterStore):
        self.store = store

    def create(self, email: str, company_name: Optional[str] = None, code: Optional[str] = None) -> dict:
        if not email or not email.strip():
            raise ValidationError("Email is required")

        if code:
            code = code.strip().upper()
            if self.store.get(_record_key(code)) is not None:
                raise ValidationError(f"Access code {code} already exists")
        else:
            code = generate_code()
            while self.store.get(_record_key(code)) is not None:
                code = generate_code()

        record = {
            "code": code,
            "email": email.strip(),
            "companyName": company_name,
            "createdAt": _now_iso(),
            "usedAt": None,
            "used": False,
        }
        self.store.set(_record_key(code), record)
        self.store.list_append(ALL_CODES_KEY, code)
        logger.info("[Access] Access code created for %s", record["email"])
        return record

    def validate(self, code: str) -> dict:
        """Returns {valid, accessCode?, error?}. Never mutates the record."""
        if not code:
            return {"valid": False, "error": INVALID_CODE}
        record = self.store.get(_record_key(code.strip().upper()))
        if record is None:
            return {"valid": False, "error": INVALID_CODE}
        if record.get("used"):
            return {"valid": False, "error": CODE_ALREADY_USED, "accessCode": record}
        return {"valid": True, "accessCode": record}

    def consume(self, code: str) -> bool:
        """Flip used=false -> used=true. Exactly one concurrent caller gets True."""
        if not code:
            return False
        code = code.strip().upper()
        record = self.store.get(_record_key(code))
        if record is None or record.get("used"):
            return False

        if not self.store.set_if_absent(_claim_key(code), _now_iso()):
            logger.info("[Access] Lost claim race for code %s", code)
            return False

        record["used"] = True
        record["usedAt"] = _now_iso()
        self.store.set(_record_key(code), record)
        logger.info("[Access] Access code marked as used: %s", code)
        return True

    def list_all(self) -> List[dict]:
        codes = self.store.list_range(ALL_CODES_KEY, 0, -1)
        records = []
        for code in dict.fromkeys(codes):
            record = self.store.get(_record_key(code))
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.get("createdAt") or "", reverse=True)

    def delete(self, code: str) -> bool:
        if not code:
            return False
        code = code.strip().upper()
        deleted = self.store.delete(_record_key(code))
        if deleted:
            self.store.delete(_claim_key(code))
            self.store.list_remove(ALL_CODES_KEY, code)
        return deleted
