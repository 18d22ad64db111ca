"""Health check helpers for one-time link dependencies."""

from __future__ import annotations

import time
from typing import Dict

import redis

from core.logging import get_logger
from services.onelink.config import OneLinkSettings

logger = get_logger(__name__)


def check_redis(settings: OneLinkSettings) -> Dict[str, object]:
    """Ping the Redis instance backing the status cache and lock (if configured)."""
    if not settings.redis_url:
        return {
            "status": "skipped",
            "detail": "ONELINK_REDIS_URL is not configured; status cache and lock are process-local.",
        }

    start = time.perf_counter()
    try:
        client = redis.Redis.from_url(settings.redis_url, decode_responses=False)
        client.ping()
    except redis.RedisError as exc:
        logger.warning("One-time link Redis health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
    latency_ms = round((time.perf_counter() - start) * 1000, 2)
    return {"status": "ok", "latencyMs": latency_ms}


__all__ = ["check_redis"]
