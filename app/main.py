"""
Product Access Backend API
Entitlements, access codes, link tokens and usage quotas for the GovCon tools.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

# Render captures stdout; configure once for every module logger
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True
)

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Run Alembic migrations on startup. Uses alembic.ini and DATABASE_URL.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    db_url = config.DATABASE_URL
    if not os.getenv("DATABASE_URL"):
        logger.warning("DATABASE_URL is not set, using %s", db_url)
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("sqlalchemy.url", db_url)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise


from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api.routes import access_codes, access_links, activate, admin, usage, webhooks
from app.core import config
from app.core.errors import register_exception_handlers
from app.db.session import engine
from app.db.base import Base
# Import all models to ensure they're registered with Base
from app.models import Purchase, AccessProfile

app = FastAPI(title="Product Access Backend")


@app.on_event("startup")
async def startup_event():
    """Create tables, then run Alembic migrations on every server restart."""
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error("Error creating tables: %s", e)
        raise

    run_migrations()

    if not config.ADMIN_PASSWORD and not config.ADMIN_SECRET:
        logger.warning("ADMIN_PASSWORD is not set; all admin requests will be rejected")
    if not config.STRIPE_WEBHOOK_SECRET and not config.STRIPE_TEST_WEBHOOK_SECRET:
        logger.warning("No Stripe webhook secret set; payment webhooks will be rejected")


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_origin_regex=r"https://.*\.(govcongiants\.org|vercel\.app|onrender\.com)",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Register routers
app.include_router(access_codes.router, prefix="/api/access-codes", tags=["Access Codes"])
app.include_router(activate.router, prefix="/api/activate", tags=["Activation"])
app.include_router(access_links.router, prefix="/api", tags=["Access Links"])
app.include_router(usage.router, prefix="/api/usage", tags=["Usage"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.get("/health")
def health():
    return {"status": "ok"}
