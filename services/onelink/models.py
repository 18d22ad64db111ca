"""Value objects shared by the codec, the stores and the link service."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

UTC = timezone.utc


def _now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def token_digest(token: str) -> str:
    """Hex sha256 of a token; used wherever a token must be keyed or indexed."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _freeze(prefill: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(prefill or {}))


@dataclass(frozen=True)
class LinkPayload:
    """Data sealed inside a token.

    ``nonce`` is unique per issuance so two tokens for the same survey, prefill
    and expiry never share plaintext.
    """

    resource_id: int
    expires_at_epoch_seconds: int
    nonce: str
    prefill_fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefill_fields", _freeze(self.prefill_fields))

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at_epoch_seconds, tz=UTC)

    def is_expired(self, *, at: Optional[datetime] = None) -> bool:
        reference = at or _now()
        return reference.timestamp() > self.expires_at_epoch_seconds

    def as_dict(self) -> Dict[str, Any]:
        return {
            "survey_id": self.resource_id,
            "prefill_data": dict(self.prefill_fields),
            "expires_at": self.expires_at_epoch_seconds,
            "unique_id": self.nonce,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LinkPayload":
        resource_id = payload["survey_id"]
        expires_at = payload["expires_at"]
        nonce = payload["unique_id"]
        prefill = payload.get("prefill_data") or {}
        if isinstance(resource_id, bool) or not isinstance(resource_id, int):
            raise ValueError("survey_id must be an integer")
        if isinstance(expires_at, bool) or not isinstance(expires_at, int):
            raise ValueError("expires_at must be an integer epoch")
        if not isinstance(nonce, str) or not nonce:
            raise ValueError("unique_id must be a non-empty string")
        if not isinstance(prefill, Mapping):
            raise ValueError("prefill_data must be an object")
        return cls(
            resource_id=resource_id,
            expires_at_epoch_seconds=expires_at,
            nonce=nonce,
            prefill_fields=prefill,
        )


@dataclass(frozen=True)
class NewLinkRecord:
    """Fields supplied by the service when persisting a freshly issued link."""

    resource_id: int
    token: str
    expires_at: datetime
    prefill_snapshot: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LinkRecord:
    """Snapshot of a durable link row."""

    id: int
    resource_id: int
    token: str
    expires_at: datetime
    created_at: datetime
    prefill_snapshot: Mapping[str, Any] = field(default_factory=dict)
    used: bool = False
    used_at: Optional[datetime] = None
    first_accessed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefill_snapshot", _freeze(self.prefill_snapshot))

    def is_expired(self, *, at: Optional[datetime] = None) -> bool:
        reference = at or _now()
        return reference > self.expires_at

    def is_valid(self, *, at: Optional[datetime] = None) -> bool:
        return not self.used and not self.is_expired(at=at)


@dataclass(frozen=True)
class IssuedLink:
    token: str
    url: str
    expires_at: datetime
    record_id: int


@dataclass(frozen=True)
class LinkPreview:
    resource_id: int
    prefill: Mapping[str, Any]
    expires_at: datetime
    record_id: int


__all__ = [
    "IssuedLink",
    "LinkPayload",
    "LinkPreview",
    "LinkRecord",
    "NewLinkRecord",
    "UTC",
    "as_utc",
    "token_digest",
]
