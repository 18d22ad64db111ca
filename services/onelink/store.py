"""Durable storage for issued one-time links.

The store is the authority on whether a link has been used. Every mutation is a
single-row conditional update so transitions stay monotonic even without the
distributed lock: ``used`` only moves false -> true and ``accessed_at`` is only
written while NULL.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.one_link import OneLink
from services.onelink.models import LinkRecord, NewLinkRecord, UTC, as_utc, token_digest

logger = get_logger(__name__)


class DuplicateTokenError(RuntimeError):
    """Raised when a token is stored twice."""


class LinkStore(Protocol):
    def create(self, record: NewLinkRecord) -> LinkRecord: ...

    def find_by_token(self, token: str) -> Optional[LinkRecord]: ...

    def find_by_id(self, record_id: int) -> Optional[LinkRecord]: ...

    def mark_used(self, record_id: int, *, at: datetime) -> bool: ...

    def mark_accessed_if_unset(self, record_id: int, *, at: datetime) -> bool: ...

    def delete_expired(self, *, now: datetime) -> int: ...


def _to_record(row: OneLink) -> LinkRecord:
    return LinkRecord(
        id=row.id,
        resource_id=row.survey_id,
        token=row.token,
        expires_at=as_utc(row.expires_at),
        created_at=as_utc(row.created_at),
        prefill_snapshot=row.prefill_data or {},
        used=bool(row.used),
        used_at=as_utc(row.used_at),
        first_accessed_at=as_utc(row.accessed_at),
    )


class SqlAlchemyLinkStore:
    """``one_links`` table access; each call runs in its own short session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def create(self, record: NewLinkRecord) -> LinkRecord:
        with self._session_factory() as session:
            row = OneLink(
                survey_id=record.resource_id,
                token=record.token,
                token_digest=token_digest(record.token),
                prefill_data=dict(record.prefill_snapshot),
                expires_at=as_utc(record.expires_at),
                used=False,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_record(row)

    def find_by_token(self, token: str) -> Optional[LinkRecord]:
        with self._session_factory() as session:
            row = session.execute(
                select(OneLink).where(OneLink.token_digest == token_digest(token))
            ).scalar_one_or_none()
            if row is None or row.token != token:
                return None
            return _to_record(row)

    def find_by_id(self, record_id: int) -> Optional[LinkRecord]:
        with self._session_factory() as session:
            row = session.get(OneLink, record_id)
            return _to_record(row) if row is not None else None

    def mark_used(self, record_id: int, *, at: datetime) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                update(OneLink)
                .where(OneLink.id == record_id, OneLink.used.is_(False))
                .values(used=True, used_at=as_utc(at))
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    def mark_accessed_if_unset(self, record_id: int, *, at: datetime) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                update(OneLink)
                .where(OneLink.id == record_id, OneLink.accessed_at.is_(None))
                .values(accessed_at=as_utc(at))
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    def delete_expired(self, *, now: datetime) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(OneLink)
                .where(OneLink.expires_at < as_utc(now))
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0


class InMemoryLinkStore:
    """Thread-safe in-process store for local runs and tests."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._records: Dict[int, LinkRecord] = {}
        self._by_token: Dict[str, int] = {}

    def create(self, record: NewLinkRecord) -> LinkRecord:
        with self._lock:
            if record.token in self._by_token:
                raise DuplicateTokenError("token already stored")
            stored = LinkRecord(
                id=next(self._ids),
                resource_id=record.resource_id,
                token=record.token,
                expires_at=as_utc(record.expires_at),
                created_at=self._clock(),
                prefill_snapshot=record.prefill_snapshot,
            )
            self._records[stored.id] = stored
            self._by_token[stored.token] = stored.id
            return stored

    def find_by_token(self, token: str) -> Optional[LinkRecord]:
        with self._lock:
            record_id = self._by_token.get(token)
            return self._records.get(record_id) if record_id is not None else None

    def find_by_id(self, record_id: int) -> Optional[LinkRecord]:
        with self._lock:
            return self._records.get(record_id)

    def mark_used(self, record_id: int, *, at: datetime) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.used:
                return False
            self._records[record_id] = replace(record, used=True, used_at=as_utc(at))
            return True

    def mark_accessed_if_unset(self, record_id: int, *, at: datetime) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.first_accessed_at is not None:
                return False
            self._records[record_id] = replace(record, first_accessed_at=as_utc(at))
            return True

    def delete_expired(self, *, now: datetime) -> int:
        with self._lock:
            expired = [rid for rid, rec in self._records.items() if rec.expires_at < now]
            for record_id in expired:
                record = self._records.pop(record_id)
                self._by_token.pop(record.token, None)
            return len(expired)


__all__ = ["DuplicateTokenError", "InMemoryLinkStore", "LinkStore", "SqlAlchemyLinkStore"]
