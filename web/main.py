"""FastAPI application exposing one-time survey links."""

from __future__ import annotations

from fastapi import FastAPI, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.env_utils import load_dotenv_if_available
from core.logging import setup_logging

load_dotenv_if_available()
setup_logging()

from services.onelink.config import OneLinkSettings  # noqa: E402
from services.onelink.health import check_redis  # noqa: E402
from web import routers  # noqa: E402

app = FastAPI(
    title="OneLink API",
    description="Issues and enforces one-time survey access links.",
    version="1.0.0",
)


@app.get("/", summary="Health Check", tags=["Default"])
def health_check():
    return {"status": "ok", "message": "OneLink API is running."}


@app.get("/healthz", include_in_schema=False)
def liveness_probe():
    """Database + Redis probe for container orchestrators."""
    db_ok, db_error = routers.health.ping_database()
    redis_status = check_redis(OneLinkSettings.load())
    healthy = db_ok and redis_status["status"] != "error"
    payload = {"status": "ok" if healthy else "unhealthy", "database": {"ok": db_ok}, "redis": redis_status}
    if db_error:
        payload["database"]["error"] = db_error
    status_code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/metrics", include_in_schema=False)
def prometheus_metrics():
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(routers.health.router, prefix="/api/v1")
app.include_router(routers.links.router, prefix="/api/v1")
