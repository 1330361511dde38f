"""
Opaque bearer tokens for product links.

Each scope keeps three keys:
    <scope>token:<token>    {token, email, customerName, createdAt, scope}
    <scope>access:<email>   {token, createdAt, customerName}  (latest token only)
    <scope>:all             emails that were ever issued a token
Re-issuing overwrites the reverse pointer; older tokens keep working until revoked.
"""
import logging
import secrets
from datetime import datetime
from typing import List, Optional

from app.core.errors import ValidationError
from app.services.access_codes import CODE_ALPHABET
from app.services.counter_store import CounterStore

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 32
SCOPES = ("ma", "db")


def generate_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class TokenIssuer:
    def __init__(self, store: CounterStore):
        self.store = store

    @staticmethod
    def _check_scope(scope: str) -> str:
        if scope not in SCOPES:
            raise ValidationError(f"Unknown token scope: {scope}")
        return scope

    def issue(self, scope: str, email: str, customer_name: Optional[str] = None) -> dict:
        self._check_scope(scope)
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")

        token = generate_token()
        record = {
            "token": token,
            "email": email,
            "customerName": customer_name,
            "createdAt": datetime.utcnow().isoformat() + "Z",
            "scope": scope,
        }
        already_listed = self.store.get(f"{scope}access:{email}") is not None

        self.store.set(f"{scope}token:{token}", record)
        self.store.set(
            f"{scope}access:{email}",
            {"token": token, "createdAt": record["createdAt"], "customerName": customer_name},
        )
        if not already_listed:
            self.store.list_append(f"{scope}:all", email)

        logger.info("[Tokens] %s token issued for %s", scope, email)
        return record

    def resolve(self, scope: str, token: str) -> Optional[dict]:
        self._check_scope(scope)
        if not token:
            return None
        return self.store.get(f"{scope}token:{token}")

    def lookup_email(self, scope: str, email: str) -> Optional[dict]:
        self._check_scope(scope)
        return self.store.get(f"{scope}access:{normalize_email(email)}")

    def revoke(self, scope: str, token: str) -> bool:
        self._check_scope(scope)
        record = self.store.get(f"{scope}token:{token}")
        if record is None:
            return False
        self.store.delete(f"{scope}token:{token}")
        pointer = self.store.get(f"{scope}access:{record['email']}")
        if pointer and pointer.get("token") == token:
            self.store.delete(f"{scope}access:{record['email']}")
            self.store.list_remove(f"{scope}:all", record["email"])
        logger.info("[Tokens] %s token revoked for %s", scope, record["email"])
        return True

    def revoke_for_email(self, scope: str, email: str) -> bool:
        """Drop the email's current token and reverse pointer."""
        self._check_scope(scope)
        email = normalize_email(email)
        pointer = self.store.get(f"{scope}access:{email}")
        if pointer is None:
            return False
        self.store.delete(f"{scope}token:{pointer['token']}", f"{scope}access:{email}")
        self.store.list_remove(f"{scope}:all", email)
        logger.info("[Tokens] %s access revoked for %s", scope, email)
        return True

    def list_all(self, scope: str) -> List[dict]:
        self._check_scope(scope)
        entries = []
        for email in dict.fromkeys(self.store.list_range(f"{scope}:all", 0, -1)):
            pointer = self.store.get(f"{scope}access:{email}")
            if pointer:
                entries.append({"email": email, **pointer})
        return sorted(entries, key=lambda e: e.get("createdAt") or "", reverse=True)
