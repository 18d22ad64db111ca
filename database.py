import os
from typing import Any, Dict, Iterator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.env import env_int

load_dotenv()

TEST_DATABASE_URL: Optional[str] = os.getenv("TEST_DATABASE_URL")
DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL") or TEST_DATABASE_URL
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL or TEST_DATABASE_URL must be set.")

ALLOW_NON_POSTGRES = os.getenv("DATABASE_ALLOW_NON_POSTGRES", "0") == "1"
IS_POSTGRES = DATABASE_URL.lower().startswith("postgresql")
if not IS_POSTGRES and not ALLOW_NON_POSTGRES:
    raise RuntimeError(f"DATABASE_URL must be a PostgreSQL DSN. Got: {DATABASE_URL}")


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Connections are shared across worker threads.
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": env_int("DATABASE_POOL_SIZE", 5, minimum=1),
        "max_overflow": env_int("DATABASE_MAX_OVERFLOW", 10, minimum=0),
        "pool_recycle": env_int("DATABASE_POOL_RECYCLE_SECONDS", 1800, minimum=30),
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
# Store snapshots read row attributes after commit.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


def get_db() -> Iterator[Session]:
    """Request-scoped session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
