import os

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from quoteflow.config import settings

db_url = str(settings.database_url)
is_postgres = db_url.startswith("postgresql")
is_sqlite = db_url.startswith("sqlite")


def _env_bool(key: str, default: str = "false") -> bool:
    v = os.getenv(key, default)
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


connect_args: dict = {}
# Avoid long hangs on DB outages (psycopg3 supports connect_timeout in seconds).
if is_postgres:
    connect_args = {"connect_timeout": int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS", "10"))}
elif is_sqlite:
    connect_args = {"check_same_thread": False}

engine_kwargs: dict = {"future": True, "connect_args": connect_args}
POOL_CONFIG: dict[str, int | str | None] = {
    "pool_size": None,
    "max_overflow": None,
    "use_null_pool": None,
}

if is_postgres:
    engine_kwargs["pool_pre_ping"] = True
    if _env_bool("DB_USE_NULL_POOL", "false"):
        engine_kwargs["poolclass"] = NullPool
        POOL_CONFIG["use_null_pool"] = "true"
    else:
        pool_size = int(os.getenv("DB_POOL_SIZE", "5"))
        max_overflow = int(os.getenv("DB_MAX_OVERFLOW", "10"))
        engine_kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=int(os.getenv("DB_POOL_TIMEOUT_SECONDS", "30")),
            pool_recycle=int(os.getenv("DB_POOL_RECYCLE_SECONDS", "1800")),
        )
        POOL_CONFIG.update(
            {"pool_size": pool_size, "max_overflow": max_overflow, "use_null_pool": "false"}
        )
elif is_sqlite and ":memory:" in db_url:
    # In-memory SQLite only survives on a single shared connection.
    engine_kwargs["poolclass"] = StaticPool

engine = create_engine(db_url, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def supports_row_locks(db) -> bool:
    """SQLite has no SELECT ... FOR UPDATE; every other backend we ship for does."""

    dialect = getattr(getattr(db, "bind", None), "dialect", None)
    name = str(getattr(dialect, "name", "") or "").lower()
    return bool(name) and name != "sqlite"


def get_db():
    db = SessionLocal()
    try:
        if is_postgres:
            timeout_ms = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))
            if timeout_ms > 0:
                db.execute(text(f"SET statement_timeout = {timeout_ms}"))
        yield db
    finally:
        db.close()
