from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from quoteflow.config import settings
from quoteflow.core.observability import uptime_seconds, utc_now_iso
from quoteflow.database import get_db

router = APIRouter(tags=["health"])


@router.get("/health", summary="Healthcheck")
def healthcheck():
    """Liveness. Keep payload stable for monitoring systems."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }


@router.get("/healthz", summary="Readiness")
def readiness(db: Session = Depends(get_db)):
    db_ok = True
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        db_ok = False
    return {
        "status": "ok" if db_ok else "degraded",
        "database": "ok" if db_ok else "unavailable",
        "time": utc_now_iso(),
    }
