"""Health-related API endpoints."""

from __future__ import annotations

from typing import Optional, Tuple

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import database
from services.onelink.config import OneLinkSettings
from services.onelink.health import check_redis

router = APIRouter(prefix="/health", tags=["Health"])


def ping_database() -> Tuple[bool, Optional[str]]:
    """Return database connectivity status and optional error message."""
    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True, None
    except SQLAlchemyError as exc:
        return False, str(exc)
    finally:
        db.close()


@router.get(
    "/status",
    summary="Service runtime status",
    description="Database and Redis connectivity used by liveness/readiness probes.",
)
def read_service_status():
    db_ok, db_error = ping_database()
    redis_status = check_redis(OneLinkSettings.load())
    healthy = db_ok and redis_status["status"] != "error"
    payload = {"status": "ok" if healthy else "degraded", "database": {"ok": db_ok}, "redis": redis_status}
    if db_error:
        payload["database"]["error"] = db_error
    return payload


__all__ = ["router", "ping_database"]
