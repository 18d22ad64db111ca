"""Issue, preview and consume one-time survey links.

Consumption follows check-cache -> lock -> re-check-store so that among any
number of concurrent attempts for the same token only one reaches the commit:

1. decode and authenticate the token (and match the expected survey, if given)
2. reject on the expiry embedded in the payload
3. reject early when the status cache already says ``used``
4. try-acquire the per-token lock (busy -> ``CONCURRENT_SUBMISSION``)
5. load the durable record
6. reject when the record is already used (and refresh the cache)
7. reject when the record itself is expired
8. stamp the first access time
9. run the caller's action
10. mark the record used
11. cache ``used`` until the token's own expiry
12. release the lock (always)

Preview runs 1-3 and 5-8 without the lock and never sets ``used``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Tuple, TypeVar
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

from core.logging import get_logger
from services.onelink import metrics
from services.onelink.codec import TokenCodec
from services.onelink.config import OneLinkSettings
from services.onelink.errors import EncodingError, InvalidTokenError, LinkErrorKind, LinkResult
from services.onelink.lock import LinkLock, LockBackendError
from services.onelink.models import (
    UTC,
    IssuedLink,
    LinkPayload,
    LinkPreview,
    LinkRecord,
    NewLinkRecord,
    as_utc,
    token_digest,
)
from services.onelink.prefill import PrefillValidator
from services.onelink.status_cache import StatusCache
from services.onelink.store import LinkStore

logger = get_logger(__name__)

T = TypeVar("T")
BusinessAction = Callable[[LinkRecord], T]

PATH_PREVIEW = "preview"
PATH_CONSUME = "consume"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _fingerprint(token: str) -> str:
    return token_digest(token)[:12]


class OneLinkService:
    """Coordinates the codec, durable store, status cache and lock."""

    def __init__(
        self,
        *,
        codec: TokenCodec,
        store: LinkStore,
        cache: StatusCache,
        lock: LinkLock,
        prefill_validator: PrefillValidator,
        settings: Optional[OneLinkSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._codec = codec
        self._store = store
        self._cache = cache
        self._lock = lock
        self._prefill_validator = prefill_validator
        self._settings = settings or OneLinkSettings()
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------
    def issue_link(
        self,
        resource_id: int,
        prefill: Optional[Mapping[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> LinkResult[IssuedLink]:
        prefill_data = dict(prefill or {})
        if prefill_data:
            invalid = self._prefill_validator.invalid_keys(resource_id, prefill_data.keys())
            if invalid:
                keys = sorted(invalid)
                return LinkResult.failure(
                    LinkErrorKind.INVALID_PREFILL_KEY,
                    f"Unknown prefill key(s) for survey {resource_id}: {', '.join(keys)}",
                    keys=keys,
                )

        now = self._clock()
        expiry, error = self._resolve_expiry(now, expires_at)
        if error is not None:
            return error

        payload = LinkPayload(
            resource_id=resource_id,
            expires_at_epoch_seconds=int(expiry.timestamp()),
            nonce=str(uuid.uuid4()),
            prefill_fields=prefill_data,
        )
        try:
            token = self._codec.encode(payload)
        except EncodingError as exc:
            logger.error("Failed to encode link for survey %s: %s", resource_id, exc)
            return LinkResult.failure(LinkErrorKind.ENCODING_ERROR, "Failed to build the link token.")

        record = self._store.create(
            NewLinkRecord(
                resource_id=resource_id,
                token=token,
                expires_at=expiry,
                prefill_snapshot=prefill_data,
            )
        )
        metrics.record_issued()
        logger.info(
            "Issued one-time link id=%s survey=%s expires_at=%s token=%s",
            record.id,
            resource_id,
            expiry.isoformat(),
            _fingerprint(token),
        )
        return LinkResult.success(
            IssuedLink(token=token, url=self.build_url(resource_id, token), expires_at=expiry, record_id=record.id)
        )

    def build_url(self, resource_id: int, token: str) -> str:
        return f"{self._settings.base_url}/surveys/{resource_id}?token={quote(token, safe='')}"

    def _resolve_expiry(
        self, now: datetime, requested: Optional[datetime]
    ) -> Tuple[datetime, Optional[LinkResult[IssuedLink]]]:
        if requested is None:
            return (now + self._settings.default_expiration).replace(microsecond=0), None

        expiry = as_utc(requested).replace(microsecond=0)
        if expiry <= now:
            return expiry, LinkResult.failure(
                LinkErrorKind.EXPIRY_OUT_OF_RANGE,
                "Expiration time must be in the future.",
            )
        latest = now + self._settings.max_expiration
        if expiry > latest:
            return expiry, LinkResult.failure(
                LinkErrorKind.EXPIRY_OUT_OF_RANGE,
                f"Expiration time exceeds the maximum allowed horizon of {self._settings.max_expiration}.",
                max_expires_at=latest.isoformat(),
            )
        return expiry, None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def preview_link(self, token: str, resource_id: Optional[int] = None) -> LinkResult[LinkPreview]:
        """Validate a token for display without consuming it.

        When ``resource_id`` is given, a token issued for another survey is rejected
        as invalid before anything is recorded against the link.
        """

        payload, rejection = self._open(token, PATH_PREVIEW, resource_id)
        if rejection is not None:
            return rejection

        record, rejection = self._load_record(token, payload, PATH_PREVIEW)
        if rejection is not None:
            return rejection

        self._mark_accessed(record)
        metrics.record_validation(PATH_PREVIEW, "ok")
        return LinkResult.success(
            LinkPreview(
                resource_id=payload.resource_id,
                prefill=payload.prefill_fields,
                expires_at=payload.expires_at,
                record_id=record.id,
            )
        )

    def consume_link(
        self, token: str, action: BusinessAction, resource_id: Optional[int] = None
    ) -> LinkResult[T]:
        """Run ``action`` at most once for ``token`` and mark the link used.

        Exceptions raised by ``action`` propagate after the lock is released; the
        link stays unused in that case. ``resource_id`` has the same meaning as in
        :meth:`preview_link`.
        """

        payload, rejection = self._open(token, PATH_CONSUME, resource_id)
        if rejection is not None:
            return rejection

        lock_key = f"onelink:consume:{token_digest(token)}"
        try:
            owner = self._lock.try_acquire(lock_key, self._settings.lock_lease)
        except LockBackendError as exc:
            logger.warning("Lock backend unavailable for token=%s: %s", _fingerprint(token), exc)
            metrics.record_backend_error("lock_acquire")
            owner = None
        if owner is None:
            return self._reject(
                PATH_CONSUME,
                token,
                LinkErrorKind.CONCURRENT_SUBMISSION,
                "This link is being submitted by another request. Please do not submit twice.",
            )

        try:
            record, rejection = self._load_record(token, payload, PATH_CONSUME)
            if rejection is not None:
                return rejection

            self._mark_accessed(record)

            try:
                value = action(record)
            except Exception:
                metrics.record_validation(PATH_CONSUME, "action_failed")
                raise

            committed = self._store.mark_used(record.id, at=self._clock())
            if not committed:
                # Only reachable when the lease ran out while the action was running.
                logger.error(
                    "Link id=%s was already marked used after its action ran token=%s",
                    record.id,
                    _fingerprint(token),
                )
            self._cache_used(token, payload)
            metrics.record_validation(PATH_CONSUME, "committed")
            logger.info("Consumed one-time link id=%s survey=%s", record.id, record.resource_id)
            return LinkResult.success(value)
        finally:
            self._lock.release(lock_key, owner)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------
    def purge_expired(self) -> int:
        removed = self._store.delete_expired(now=self._clock())
        logger.info("Purged %d expired one-time link(s).", removed)
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _open(
        self, token: str, path: str, resource_id: Optional[int] = None
    ) -> Tuple[Optional[LinkPayload], Optional[LinkResult[Any]]]:
        try:
            payload = self._codec.decode(token)
        except InvalidTokenError as exc:
            logger.info("Rejected undecodable link token on %s: %s", path, exc)
            metrics.record_validation(path, LinkErrorKind.INVALID_TOKEN.value)
            return None, LinkResult.failure(LinkErrorKind.INVALID_TOKEN, "The link is invalid.")

        if resource_id is not None and payload.resource_id != resource_id:
            return None, self._reject(path, token, LinkErrorKind.INVALID_TOKEN, "The link is invalid.")

        if payload.is_expired(at=self._clock()):
            return None, self._reject(path, token, LinkErrorKind.TOKEN_EXPIRED, "The link has expired.")

        try:
            cached_used = self._cache.get(token)
        except Exception as exc:
            logger.warning("Status cache read failed for token=%s: %s", _fingerprint(token), exc)
            metrics.record_backend_error("cache_get")
            cached_used = None
        if cached_used:
            return None, self._reject(path, token, LinkErrorKind.LINK_ALREADY_USED, "The link has already been used.")
        return payload, None

    def _load_record(
        self, token: str, payload: LinkPayload, path: str
    ) -> Tuple[Optional[LinkRecord], Optional[LinkResult[Any]]]:
        record = self._store.find_by_token(token)
        if record is None or record.resource_id != payload.resource_id:
            return None, self._reject(path, token, LinkErrorKind.INVALID_TOKEN, "The link is invalid.")
        if record.used:
            self._cache_used(token, payload)
            return None, self._reject(path, token, LinkErrorKind.LINK_ALREADY_USED, "The link has already been used.")
        if record.is_expired(at=self._clock()):
            return None, self._reject(path, token, LinkErrorKind.TOKEN_EXPIRED, "The link has expired.")
        return record, None

    def _mark_accessed(self, record: LinkRecord) -> None:
        if record.first_accessed_at is not None:
            return
        try:
            self._store.mark_accessed_if_unset(record.id, at=self._clock())
        except SQLAlchemyError as exc:
            logger.warning("Failed to mark link id=%s as accessed: %s", record.id, exc)
            metrics.record_backend_error("mark_accessed")

    def _cache_used(self, token: str, payload: LinkPayload) -> None:
        ttl = payload.expires_at - self._clock()
        if ttl <= timedelta(0):
            return
        try:
            self._cache.set(token, True, ttl)
        except Exception as exc:
            logger.warning("Status cache write failed for token=%s: %s", _fingerprint(token), exc)
            metrics.record_backend_error("cache_set")

    def _reject(self, path: str, token: str, kind: LinkErrorKind, message: str) -> LinkResult[Any]:
        logger.info("Rejected link token=%s on %s: %s", _fingerprint(token), path, kind.value)
        metrics.record_validation(path, kind.value)
        return LinkResult.failure(kind, message)


__all__ = ["BusinessAction", "OneLinkService"]
