"""
replyflow API: Instagram webhook intake and the dashboard flow-editing routes.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
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
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        logger.error("DATABASE_URL is not set. Alembic migrations will not run.")
        return
    if db_url.startswith("postgres://"):
        db_url = "postgresql://" + db_url[10:]
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", db_url)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise


from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from replyflow.api.routes import automations, webhooks
from replyflow.db.session import engine
from replyflow.db.base import Base
# Import all models to ensure they're registered with Base
import replyflow.models  # noqa: F401

app = FastAPI(title="replyflow")


@app.on_event("startup")
async def startup_event():
    """Create tables, then bring the schema up to head."""
    try:
        logger.info("🔄 Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("✅ Database tables created")
    except Exception as e:
        logger.error("⚠️ Error creating tables: %s", e)
        raise

    run_migrations()


@app.on_event("shutdown")
async def shutdown_event():
    # Let in-flight tracking/analytics writes finish
    await webhooks.get_orchestrator().tracker.drain()


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(automations.router, prefix="/automations", tags=["Automations"])


@app.get("/")
def root():
    return {"status": "ok"}
