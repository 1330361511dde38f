"""
Runtime configuration read from the environment (.env is loaded in app.main).

Modules read these through `config.NAME` so tests can monkeypatch a single value.
"""
import os


def _normalize_db_url(url: str) -> str:
    # Render/Supabase hand out postgres:// which SQLAlchemy no longer accepts
    if url.startswith("postgres://"):
        return "postgresql://" + url[10:]
    return url


ENVIRONMENT = os.getenv("ENVIRONMENT", "development").strip().lower()
IS_PRODUCTION = ENVIRONMENT == "production"

APP_BASE_URL = os.getenv("APP_BASE_URL", "https://tools.govcongiants.org").rstrip("/")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

# Admin credentials. Empty means every admin request is rejected.
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
ADMIN_SECRET = os.getenv("ADMIN_SECRET", "")

# Stripe: live and test mode secrets are both accepted on the same endpoint
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_TEST_WEBHOOK_SECRET = os.getenv("STRIPE_TEST_WEBHOOK_SECRET", "")
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_TEST_SECRET_KEY = os.getenv("STRIPE_TEST_SECRET_KEY", "")
WEBHOOK_DEDUPE_CAPACITY = int(os.getenv("WEBHOOK_DEDUPE_CAPACITY", "1000"))

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))

DATABASE_URL = _normalize_db_url(os.getenv("DATABASE_URL", "sqlite:///./access.db"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))

# JSON overrides for the product catalog, e.g. {"market-assassin": {"standard": 50}}
TIER_QUOTAS_JSON = os.getenv("TIER_QUOTAS_JSON", "")
BUNDLES_JSON = os.getenv("BUNDLES_JSON", "")

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "").strip()
NOTIFY_FROM_EMAIL = os.getenv("NOTIFY_FROM_EMAIL", "GovCon Giants <hello@govcongiants.org>")
APP_NAME = os.getenv("APP_NAME", "GovCon Giants")

# Identity cookies set on activation and token links
COOKIE_MAX_AGE = 60 * 60 * 24 * 365
COOKIE_SECURE = IS_PRODUCTION
COOKIE_SAMESITE = "lax"
