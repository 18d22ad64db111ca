"""One-time survey access links."""

from .codec import EncryptionKey, TokenCodec
from .errors import (
    EncodingError,
    InvalidTokenError,
    LinkError,
    LinkErrorKind,
    LinkResult,
    LinkResultError,
)
from .models import IssuedLink, LinkPayload, LinkPreview, LinkRecord
from .service import OneLinkService

__all__ = [
    "EncodingError",
    "EncryptionKey",
    "InvalidTokenError",
    "IssuedLink",
    "LinkError",
    "LinkErrorKind",
    "LinkPayload",
    "LinkPreview",
    "LinkRecord",
    "LinkResult",
    "LinkResultError",
    "OneLinkService",
    "TokenCodec",
]
