"""Short-lived try-acquire locks keyed by link token.

Acquisition never waits: a held key fails immediately. Each successful acquire
returns an owner id, and release only removes the lock while that owner still
holds it, so a holder whose lease expired cannot free someone else's lock.
Leases are fixed; there is no renewal.
"""

from __future__ import annotations

import threading
import time
import uuid
from datetime import timedelta
from typing import Dict, Optional, Protocol, Tuple

import redis

from core.logging import get_logger

logger = get_logger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class LockBackendError(RuntimeError):
    """Lock backend could not be reached."""


class LinkLock(Protocol):
    def try_acquire(self, key: str, lease: timedelta) -> Optional[str]: ...

    def release(self, key: str, owner: str) -> None: ...


def _lease_ms(lease: timedelta) -> int:
    return max(int(lease.total_seconds() * 1000), 1)


class RedisLinkLock:
    """``SET key owner NX PX lease`` with compare-and-delete release."""

    def __init__(self, client: "redis.Redis", *, prefix: str = "lock:"):
        self._client = client
        self._prefix = prefix
        self._release = client.register_script(_RELEASE_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisLinkLock":
        return cls(redis.Redis.from_url(url, decode_responses=False))

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def try_acquire(self, key: str, lease: timedelta) -> Optional[str]:
        owner = uuid.uuid4().hex
        try:
            acquired = self._client.set(self._key(key), owner, nx=True, px=_lease_ms(lease))
        except redis.RedisError as exc:
            raise LockBackendError(f"lock acquire failed: {exc}") from exc
        return owner if acquired else None

    def release(self, key: str, owner: str) -> None:
        try:
            self._release(keys=[self._key(key)], args=[owner])
        except redis.RedisError as exc:
            # The lease still bounds how long the key stays held.
            logger.warning("Lock release failed for %s: %s", key, exc)


class InMemoryLinkLock:
    """Thread-safe process-local lock table with monotonic lease deadlines."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._held: Dict[str, Tuple[str, float]] = {}

    def try_acquire(self, key: str, lease: timedelta) -> Optional[str]:
        now = time.monotonic()
        with self._mutex:
            current = self._held.get(key)
            if current is not None and current[1] > now:
                return None
            owner = uuid.uuid4().hex
            self._held[key] = (owner, now + lease.total_seconds())
            return owner

    def release(self, key: str, owner: str) -> None:
        with self._mutex:
            current = self._held.get(key)
            if current is not None and current[0] == owner:
                del self._held[key]

    def is_held(self, key: str) -> bool:
        with self._mutex:
            current = self._held.get(key)
            return current is not None and current[1] > time.monotonic()


__all__ = ["InMemoryLinkLock", "LinkLock", "LockBackendError", "RedisLinkLock"]
