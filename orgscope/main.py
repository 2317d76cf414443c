"""Main FastAPI application."""

import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import __version__
from . import models  # noqa: F401  (registers tables on Base.metadata)
from .api import nodes_router, grants_router, access_router, users_router, audit_router
from .core.config import settings, ConfigurationError, Environment, DEFAULT_SYSTEM_ACTOR
from .core.logging_config import setup_logging
from .database import engine, Base, get_db, SessionLocal, DATABASE_URL
from .exceptions import OrgScopeError
from .middleware.exception_handler import orgscope_exception_handler, request_validation_handler
from .middleware.request_context import RequestContextMiddleware
from .services import audit_service

setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)


def _mask_url(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r'://([^:]+):([^@]+)@', r'://\1:***@', url)


def _validate_database_connection() -> None:
    """Test that the database is reachable. Exits with clear message on failure."""
    masked = _mask_url(DATABASE_URL)
    logger.info(f"Connecting to database: {masked}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except SQLAlchemyError as e:
        hint = (
            "Check that the directory exists and is writable."
            if DATABASE_URL.startswith("sqlite")
            else "Verify the server is running and DATABASE_URL credentials are correct."
        )
        logger.critical(
            "Database connection failed.\n"
            f"  DATABASE_URL: {masked}\n"
            f"  {hint}\n"
            f"  Error: {e}"
        )
        raise SystemExit(1) from e


_validate_database_connection()
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the orgscope API."""
    logger.info(f"Environment: {settings.environment.value}")
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e

    if settings.environment == Environment.DEVELOPMENT:
        if DEFAULT_SYSTEM_ACTOR in settings.get_system_actor_ids():
            logger.warning(
                "SECURITY: the default '%s' system actor is enabled and bypasses all grant checks. "
                "Set SYSTEM_ACTOR_IDS for production.",
                DEFAULT_SYSTEM_ACTOR,
            )
        origins = settings.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            logger.warning(
                "CORS allows localhost origins: %s. Remove these for production.",
                localhost_origins,
            )

    if settings.audit_retention_days > 0:
        db = SessionLocal()
        try:
            purged = audit_service.purge_old_entries(db, days=settings.audit_retention_days)
            if purged > 0:
                logger.info(f"Purged {purged} audit log entries older than {settings.audit_retention_days} days")
        finally:
            db.close()

    yield


app = FastAPI(
    title="orgscope API",
    description=(
        "Hierarchy-aware access scopes: an org tree stored as materialized paths, "
        "role grants that optionally inherit down the tree, and member queries "
        "filtered to what the caller may see.\n\n"
        f"**Identity:** every endpoint except `/` and `/health` requires the "
        f"`{settings.actor_header}` header set by the identity gateway."
    ),
    version=__version__,
    license_info={"name": "MIT", "url": "https://opensource.org/licenses/MIT"},
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", settings.actor_header, "X-Request-ID"],
)
app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(OrgScopeError, orgscope_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

db_type = "PostgreSQL" if DATABASE_URL.startswith("postgresql") else "SQLite"
logger.info(
    "orgscope API started | env=%s | db=%s | max_depth=%s | cors=%s",
    settings.environment.value,
    db_type,
    settings.max_hierarchy_depth,
    ",".join(settings.get_cors_origins()),
)

app.include_router(nodes_router)
app.include_router(grants_router)
app.include_router(access_router)
app.include_router(users_router)
app.include_router(audit_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "orgscope API",
        "version": __version__,
        "status": "running"
    }


_startup_time = time.monotonic()


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check returning database status, uptime and active node count.

    Never raises; returns degraded status on DB failure so load balancers
    can still probe without receiving 5xx.
    """
    db_status = "ok"
    node_count = 0
    try:
        node_count = db.execute(text("SELECT COUNT(*) FROM nodes WHERE is_active = :a"), {"a": True}).scalar() or 0
    except SQLAlchemyError:
        logger.exception("Health check query failed")
        db_status = "error"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "db": db_status,
        "uptime_seconds": round(time.monotonic() - _startup_time),
        "version": __version__,
        "node_count": node_count,
    }
