"""Runtime settings for one-time links."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from core.env import env_int, env_str

DEFAULT_EXPIRATION_SECONDS = 7 * 24 * 60 * 60
MAX_EXPIRATION_SECONDS = 30 * 24 * 60 * 60
LOCK_LEASE_SECONDS = 10


@dataclass(frozen=True)
class OneLinkSettings:
    """Link horizons, lock lease and backend locations."""

    base_url: str = "http://localhost:3000"
    default_expiration: timedelta = timedelta(seconds=DEFAULT_EXPIRATION_SECONDS)
    max_expiration: timedelta = timedelta(seconds=MAX_EXPIRATION_SECONDS)
    lock_lease: timedelta = timedelta(seconds=LOCK_LEASE_SECONDS)
    redis_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.default_expiration <= timedelta(0):
            raise ValueError("default expiration must be positive")
        if self.default_expiration > self.max_expiration:
            raise ValueError("default expiration cannot exceed the maximum expiration")
        if self.lock_lease <= timedelta(0):
            raise ValueError("lock lease must be positive")

    @classmethod
    def load(cls) -> "OneLinkSettings":
        base_url = (env_str("ONELINK_BASE_URL", "http://localhost:3000") or "http://localhost:3000").strip()
        redis_url = (env_str("ONELINK_REDIS_URL") or "").strip() or None
        return cls(
            base_url=base_url.rstrip("/"),
            default_expiration=timedelta(
                seconds=env_int("ONELINK_DEFAULT_EXPIRATION_SECONDS", DEFAULT_EXPIRATION_SECONDS, minimum=60)
            ),
            max_expiration=timedelta(
                seconds=env_int("ONELINK_MAX_EXPIRATION_SECONDS", MAX_EXPIRATION_SECONDS, minimum=60)
            ),
            lock_lease=timedelta(seconds=env_int("ONELINK_LOCK_LEASE_SECONDS", LOCK_LEASE_SECONDS, minimum=1, maximum=300)),
            redis_url=redis_url,
        )


def load_encryption_key_setting() -> str:
    value = (env_str("ONELINK_ENCRYPTION_KEY") or "").strip()
    if not value:
        raise RuntimeError("ONELINK_ENCRYPTION_KEY must be set (32 characters or base64:<32 bytes>).")
    return value


__all__ = ["OneLinkSettings", "load_encryption_key_setting"]
