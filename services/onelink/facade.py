"""Process-wide wiring of the one-time link service from environment settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Tuple

from core.logging import get_logger
from services.onelink.codec import EncryptionKey, TokenCodec
from services.onelink.config import OneLinkSettings, load_encryption_key_setting
from services.onelink.lock import InMemoryLinkLock, LinkLock, RedisLinkLock
from services.onelink.prefill import SqlPrefillValidator
from services.onelink.service import OneLinkService
from services.onelink.status_cache import InMemoryStatusCache, RedisStatusCache, StatusCache
from services.onelink.store import SqlAlchemyLinkStore

logger = get_logger(__name__)


def build_cache_and_lock(settings: OneLinkSettings) -> Tuple[StatusCache, LinkLock]:
    if not settings.redis_url:
        logger.warning("ONELINK_REDIS_URL is not configured; using process-local status cache and lock.")
        return InMemoryStatusCache(), InMemoryLinkLock()
    return RedisStatusCache.from_url(settings.redis_url), RedisLinkLock.from_url(settings.redis_url)


def build_default_service() -> OneLinkService:
    """Build the service from ``ONELINK_*`` settings and the shared database session factory."""

    from database import SessionLocal

    settings = OneLinkSettings.load()
    key = EncryptionKey.from_setting(load_encryption_key_setting())
    cache, lock = build_cache_and_lock(settings)
    return OneLinkService(
        codec=TokenCodec(key),
        store=SqlAlchemyLinkStore(SessionLocal),
        cache=cache,
        lock=lock,
        prefill_validator=SqlPrefillValidator(SessionLocal),
        settings=settings,
    )


@lru_cache(maxsize=1)
def get_onelink_service() -> OneLinkService:
    return build_default_service()


__all__ = ["build_cache_and_lock", "build_default_service", "get_onelink_service"]
