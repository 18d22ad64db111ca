"""TTL-bounded projection of link ``used`` status.

The cache is advisory: a ``used`` hit lets the service reject early, anything
else falls through to the durable store.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Dict, Optional, Protocol, Tuple

import redis

from core.logging import get_logger
from services.onelink.models import token_digest

logger = get_logger(__name__)

_USED = b"used"
_UNUSED = b"unused"


class StatusCacheError(RuntimeError):
    """Cache backend failed; callers treat it as a miss."""


class StatusCache(Protocol):
    def get(self, token: str) -> Optional[bool]: ...

    def set(self, token: str, used: bool, ttl: timedelta) -> None: ...


class RedisStatusCache:
    _KEY_TEMPLATE = "onelink:status:{digest}"

    def __init__(self, client: "redis.Redis"):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStatusCache":
        return cls(redis.Redis.from_url(url, decode_responses=False))

    def _key(self, token: str) -> str:
        return self._KEY_TEMPLATE.format(digest=token_digest(token))

    def get(self, token: str) -> Optional[bool]:
        try:
            raw = self._client.get(self._key(token))
        except redis.RedisError as exc:
            raise StatusCacheError(f"status lookup failed: {exc}") from exc
        if raw is None:
            return None
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        return raw == _USED

    def set(self, token: str, used: bool, ttl: timedelta) -> None:
        ttl_ms = int(ttl.total_seconds() * 1000)
        if ttl_ms <= 0:
            return
        try:
            self._client.set(self._key(token), _USED if used else _UNUSED, px=ttl_ms)
        except redis.RedisError as exc:
            raise StatusCacheError(f"status write failed: {exc}") from exc


class InMemoryStatusCache:
    """Process-local cache keyed by token digest, expiring on a monotonic clock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[bool, float]] = {}

    def get(self, token: str) -> Optional[bool]:
        key = token_digest(token)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            used, deadline = entry
            if time.monotonic() >= deadline:
                self._entries.pop(key, None)
                return None
            return used

    def set(self, token: str, used: bool, ttl: timedelta) -> None:
        seconds = ttl.total_seconds()
        if seconds <= 0:
            return
        with self._lock:
            self._entries[token_digest(token)] = (used, time.monotonic() + seconds)

    def purge_expired(self) -> int:
        now = time.monotonic()
        with self._lock:
            expired = [key for key, (_, deadline) in self._entries.items() if deadline <= now]
            for key in expired:
                self._entries.pop(key, None)
            return len(expired)


__all__ = [
    "InMemoryStatusCache",
    "RedisStatusCache",
    "StatusCache",
    "StatusCacheError",
    "token_digest",
]
