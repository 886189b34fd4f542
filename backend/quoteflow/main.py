import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from quoteflow.api.router import api_router
from quoteflow.api.routes import health
from quoteflow.config import settings
from quoteflow.core.observability import (
    global_exception_handler,
    http_exception_handler,
    request_logging_middleware,
    validation_exception_handler,
)
from quoteflow.database import POOL_CONFIG, SessionLocal, engine
from quoteflow.scripts.seed_users import create_default_users
from quoteflow.services.cache import build_cache
from quoteflow.services.email import build_email_sender

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("quoteflow")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(
    title=settings.app_name,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
)

# Expose logger for middleware without creating circular imports.
app.state.logger = logger
app.state.settings_cors_origins = settings.cors_origins
app.state.cache = build_cache(settings)
app.state.email_sender = build_email_sender(settings)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=api_prefix)
app.include_router(health.router)


def _run_migrations_if_configured() -> None:
    if not settings.run_migrations_on_start:
        return

    # Avoid running migrations during tests.
    if (settings.environment or "").lower() == "test":
        return

    # Import lazily to keep import graph light for non-migration startups.
    from alembic import command
    from alembic.config import Config
    from sqlalchemy import text

    backend_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_root / "alembic.ini"))

    try:
        with engine.connect() as connection:
            dialect = str(connection.dialect.name or "").lower()

            # Best-effort: avoid concurrent migrations across multiple instances.
            lock_acquired = True
            if dialect == "postgresql":
                lock_acquired = bool(
                    connection.execute(text("select pg_try_advisory_lock(:k)"), {"k": 73019311}).scalar()
                )
            if not lock_acquired:
                logger.info("migrations_skipped_lock_not_acquired")
                return

            try:
                # Reused by alembic/env.py via config.attributes['connection'].
                alembic_cfg.attributes["connection"] = connection
                command.upgrade(alembic_cfg, "head")
                logger.info("migrations_applied")
            finally:
                if dialect == "postgresql":
                    connection.execute(text("select pg_advisory_unlock(:k)"), {"k": 73019311})
                    connection.commit()
    except Exception as e:
        # Don't crash the API if migrations fail; endpoints that need the DB will error.
        logger.error("migrations_failed", extra={"error": str(e)})


def _seed_dev_users() -> None:
    env = str(settings.environment or "dev").lower()
    if env in {"prod", "production", "test"} or not settings.seed_dev_users:
        return

    db = SessionLocal()
    try:
        created = create_default_users(db)
        if created:
            logger.info("dev_users_seeded", extra={"created": created})
    except OperationalError as e:
        # Database not ready yet (e.g., missing tables) - don't block startup.
        logger.warning("dev_user_seed_failed", extra={"error": str(e)})
        db.rollback()
    finally:
        db.close()


@app.on_event("startup")
def _startup():
    pool_status = None
    try:
        pool_status = engine.pool.status()
    except Exception:
        pool_status = None

    logger.info(
        "runtime_config",
        extra={
            "pid": os.getpid(),
            "environment": settings.environment,
            "web_concurrency": os.getenv("WEB_CONCURRENCY"),
            "db_pool": POOL_CONFIG,
            "db_pool_status": pool_status,
            "cache_backend": type(app.state.cache).__name__,
            "email_backend": type(app.state.email_sender).__name__,
        },
    )
    _run_migrations_if_configured()
    _seed_dev_users()


@app.get("/", tags=["meta"])
def root():
    docs_path = (
        (f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
        if settings.enable_docs
        else None
    )
    return {"message": settings.app_name, "docs": docs_path}
