import time
from datetime import timedelta
from typing import Dict, Optional

import pytest
import redis

from services.onelink.lock import InMemoryLinkLock, LockBackendError, RedisLinkLock
from services.onelink.status_cache import (
    InMemoryStatusCache,
    RedisStatusCache,
    StatusCacheError,
    token_digest,
)


class FakeRedis:
    """Minimal stand-in for the redis-py calls used by the cache and lock adapters."""

    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.values: Dict[str, bytes] = {}
        self.expiry_ms: Dict[str, int] = {}

    def _check(self) -> None:
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def get(self, key: str) -> Optional[bytes]:
        self._check()
        return self.values.get(key)

    def set(self, key: str, value, nx: bool = False, px: Optional[int] = None):
        self._check()
        if nx and key in self.values:
            return None
        self.values[key] = value.encode() if isinstance(value, str) else value
        if px is not None:
            self.expiry_ms[key] = px
        return True

    def register_script(self, script: str):
        def run(keys, args):
            self._check()
            key, owner = keys[0], args[0]
            if self.values.get(key) == owner.encode():
                del self.values[key]
                return 1
            return 0

        return run


# ----------------------------------------------------------------------
# Status cache
# ----------------------------------------------------------------------


def test_in_memory_cache_round_trip_and_expiry():
    cache = InMemoryStatusCache()
    assert cache.get("tok") is None

    cache.set("tok", True, timedelta(seconds=60))
    assert cache.get("tok") is True

    cache.set("short", True, timedelta(milliseconds=20))
    time.sleep(0.05)
    assert cache.get("short") is None
    assert cache.get("tok") is True


def test_in_memory_cache_ignores_non_positive_ttl():
    cache = InMemoryStatusCache()
    cache.set("tok", True, timedelta(0))
    assert cache.get("tok") is None


def test_in_memory_cache_purge_expired():
    cache = InMemoryStatusCache()
    cache.set("a", True, timedelta(milliseconds=10))
    cache.set("b", True, timedelta(minutes=5))
    time.sleep(0.03)

    assert cache.purge_expired() == 1
    assert cache.get("b") is True


def test_redis_cache_keys_by_token_digest():
    client = FakeRedis()
    cache = RedisStatusCache(client)

    cache.set("secret-token", True, timedelta(seconds=30))

    key = f"onelink:status:{token_digest('secret-token')}"
    assert client.values == {key: b"used"}
    assert client.expiry_ms[key] == 30_000
    assert cache.get("secret-token") is True
    assert cache.get("other-token") is None


def test_redis_cache_unused_value_reads_false():
    client = FakeRedis()
    cache = RedisStatusCache(client)
    cache.set("tok", False, timedelta(seconds=5))
    assert cache.get("tok") is False


def test_redis_cache_skips_expired_ttl():
    client = FakeRedis()
    RedisStatusCache(client).set("tok", True, timedelta(seconds=-1))
    assert client.values == {}


def test_redis_cache_wraps_backend_errors():
    cache = RedisStatusCache(FakeRedis(fail=True))
    with pytest.raises(StatusCacheError):
        cache.get("tok")
    with pytest.raises(StatusCacheError):
        cache.set("tok", True, timedelta(seconds=5))


# ----------------------------------------------------------------------
# Lock
# ----------------------------------------------------------------------


def test_in_memory_lock_is_exclusive_until_released():
    lock = InMemoryLinkLock()
    owner = lock.try_acquire("k", timedelta(seconds=10))

    assert owner is not None
    assert lock.try_acquire("k", timedelta(seconds=10)) is None
    assert lock.try_acquire("other", timedelta(seconds=10)) is not None

    lock.release("k", owner)
    assert not lock.is_held("k")
    assert lock.try_acquire("k", timedelta(seconds=10)) is not None


def test_in_memory_lock_lease_expires():
    lock = InMemoryLinkLock()
    assert lock.try_acquire("k", timedelta(milliseconds=20)) is not None
    time.sleep(0.05)
    assert lock.try_acquire("k", timedelta(seconds=10)) is not None


def test_in_memory_lock_stale_owner_cannot_release_new_holder():
    lock = InMemoryLinkLock()
    stale = lock.try_acquire("k", timedelta(milliseconds=20))
    time.sleep(0.05)
    fresh = lock.try_acquire("k", timedelta(seconds=10))

    lock.release("k", stale)

    assert fresh is not None
    assert lock.is_held("k")


def test_redis_lock_acquire_and_release():
    client = FakeRedis()
    lock = RedisLinkLock(client)

    owner = lock.try_acquire("onelink:consume:abc", timedelta(seconds=10))
    assert owner is not None
    assert client.expiry_ms["lock:onelink:consume:abc"] == 10_000
    assert lock.try_acquire("onelink:consume:abc", timedelta(seconds=10)) is None

    lock.release("onelink:consume:abc", "someone-else")
    assert "lock:onelink:consume:abc" in client.values

    lock.release("onelink:consume:abc", owner)
    assert client.values == {}


def test_redis_lock_acquire_failure_raises():
    lock = RedisLinkLock(FakeRedis(fail=True))
    with pytest.raises(LockBackendError):
        lock.try_acquire("k", timedelta(seconds=1))


def test_redis_lock_release_failure_is_logged(caplog):
    client = FakeRedis()
    lock = RedisLinkLock(client)
    owner = lock.try_acquire("k", timedelta(seconds=1))
    client.fail = True

    lock.release("k", owner)

    assert "Lock release failed" in caplog.text
