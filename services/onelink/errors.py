"""Error kinds and the result type returned by the one-time link service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")


class LinkErrorKind(str, Enum):
    """Closed set of expected link failures."""

    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED = "token_expired"
    LINK_ALREADY_USED = "link_already_used"
    CONCURRENT_SUBMISSION = "concurrent_submission"
    INVALID_PREFILL_KEY = "invalid_prefill_key"
    EXPIRY_OUT_OF_RANGE = "expiry_out_of_range"
    ENCODING_ERROR = "encoding_error"

    @property
    def code(self) -> str:
        return f"onelink.{self.value}"

    @property
    def retryable(self) -> bool:
        return self is LinkErrorKind.CONCURRENT_SUBMISSION

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS: Dict[LinkErrorKind, int] = {
    LinkErrorKind.INVALID_TOKEN: 400,
    LinkErrorKind.TOKEN_EXPIRED: 410,
    LinkErrorKind.LINK_ALREADY_USED: 409,
    LinkErrorKind.CONCURRENT_SUBMISSION: 409,
    LinkErrorKind.INVALID_PREFILL_KEY: 400,
    LinkErrorKind.EXPIRY_OUT_OF_RANGE: 400,
    LinkErrorKind.ENCODING_ERROR: 500,
}


@dataclass(frozen=True)
class LinkError:
    kind: LinkErrorKind
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_detail(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {
            "code": self.kind.code,
            "message": self.message,
            "retryable": self.kind.retryable,
        }
        if self.details:
            detail["details"] = dict(self.details)
        return detail


class LinkResultError(RuntimeError):
    """Raised by ``LinkResult.unwrap`` when the result holds an error."""

    def __init__(self, error: LinkError):
        super().__init__(error.message)
        self.error = error


@dataclass(frozen=True)
class LinkResult(Generic[T]):
    """Either a value or a ``LinkError``; never both."""

    value: Optional[T] = None
    error: Optional[LinkError] = None

    @classmethod
    def success(cls, value: T) -> "LinkResult[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: LinkErrorKind,
        message: str,
        **details: Any,
    ) -> "LinkResult[T]":
        return cls(error=LinkError(kind=kind, message=message, details=details))

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[LinkErrorKind]:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        if self.error is not None:
            raise LinkResultError(self.error)
        return self.value  # type: ignore[return-value]


class TokenCodecError(Exception):
    """Base error raised by the token codec."""


class InvalidTokenError(TokenCodecError):
    """Token could not be decoded or authenticated."""


class EncodingError(TokenCodecError):
    """Payload could not be serialised into a token."""


__all__ = [
    "EncodingError",
    "InvalidTokenError",
    "LinkError",
    "LinkErrorKind",
    "LinkResult",
    "LinkResultError",
    "TokenCodecError",
]
