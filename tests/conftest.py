import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
os.environ.setdefault("ONELINK_ENCRYPTION_KEY", "0123456789abcdef0123456789abcdef")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import models  # noqa: E402,F401
from database import Base  # noqa: E402
from services.onelink.codec import EncryptionKey, TokenCodec  # noqa: E402
from services.onelink.config import OneLinkSettings  # noqa: E402
from services.onelink.lock import InMemoryLinkLock  # noqa: E402
from services.onelink.prefill import StaticPrefillValidator  # noqa: E402
from services.onelink.service import OneLinkService  # noqa: E402
from services.onelink.status_cache import InMemoryStatusCache  # noqa: E402
from services.onelink.store import InMemoryLinkStore  # noqa: E402

UTC = timezone.utc


class FakeClock:
    """Settable UTC clock shared by the service and in-memory store."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime.now(UTC).replace(microsecond=0))


@pytest.fixture()
def encryption_key() -> EncryptionKey:
    return EncryptionKey.from_text("0123456789abcdef0123456789abcdef")


@pytest.fixture()
def codec(encryption_key: EncryptionKey) -> TokenCodec:
    return TokenCodec(encryption_key)


@pytest.fixture()
def settings() -> OneLinkSettings:
    return OneLinkSettings(
        base_url="https://surveys.example.com",
        default_expiration=timedelta(hours=1),
        max_expiration=timedelta(days=30),
        lock_lease=timedelta(seconds=10),
    )


@pytest.fixture()
def prefill_validator() -> StaticPrefillValidator:
    return StaticPrefillValidator({42: {"name", "email", "tags"}, 7: {"department"}})


@pytest.fixture()
def memory_store(clock: FakeClock) -> InMemoryLinkStore:
    return InMemoryLinkStore(clock=clock)


@pytest.fixture()
def memory_cache() -> InMemoryStatusCache:
    return InMemoryStatusCache()


@pytest.fixture()
def memory_lock() -> InMemoryLinkLock:
    return InMemoryLinkLock()


@pytest.fixture()
def build_service(
    codec: TokenCodec,
    memory_store: InMemoryLinkStore,
    memory_cache: InMemoryStatusCache,
    memory_lock: InMemoryLinkLock,
    prefill_validator: StaticPrefillValidator,
    settings: OneLinkSettings,
    clock: FakeClock,
) -> Callable[..., OneLinkService]:
    def _build(**overrides) -> OneLinkService:
        parts = dict(
            codec=codec,
            store=memory_store,
            cache=memory_cache,
            lock=memory_lock,
            prefill_validator=prefill_validator,
            settings=settings,
            clock=clock,
        )
        parts.update(overrides)
        return OneLinkService(**parts)

    return _build


@pytest.fixture()
def service(build_service: Callable[..., OneLinkService]) -> OneLinkService:
    return build_service()


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture()
def file_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite engine for tests that hit the store from several threads."""
    test_engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'onelink.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        test_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Callable[[], Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
