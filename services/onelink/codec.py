"""AES-256-GCM token codec for one-time link payloads.

Token layout (before url-safe base64): ``nonce (12 bytes) || ciphertext || tag (16 bytes)``.
The plaintext is the canonical JSON form of :class:`LinkPayload`.
"""

from __future__ import annotations

import base64
import binascii
import json
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from services.onelink.errors import EncodingError, InvalidTokenError
from services.onelink.models import LinkPayload

KEY_SIZE_BYTES = 32
NONCE_SIZE_BYTES = 12
TAG_SIZE_BYTES = 16
MIN_TOKEN_BYTES = NONCE_SIZE_BYTES + TAG_SIZE_BYTES


class EncryptionKey:
    """A validated 256-bit key. Constructed once at startup and injected into the codec."""

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes):
        if not isinstance(raw, (bytes, bytearray)):
            raise TypeError("encryption key must be bytes")
        if len(raw) != KEY_SIZE_BYTES:
            raise ValueError(f"encryption key must be exactly {KEY_SIZE_BYTES} bytes, got {len(raw)} bytes")
        self._raw = bytes(raw)

    @classmethod
    def from_text(cls, secret: str) -> "EncryptionKey":
        """Use a 32-character secret verbatim (UTF-8 bytes)."""
        return cls(secret.encode("utf-8"))

    @classmethod
    def from_base64(cls, encoded: str) -> "EncryptionKey":
        try:
            raw = base64.urlsafe_b64decode(encoded.strip().encode("ascii"))
        except (binascii.Error, ValueError) as exc:
            raise ValueError("encryption key is not valid base64") from exc
        return cls(raw)

    @classmethod
    def from_setting(cls, value: str) -> "EncryptionKey":
        """Parse ``base64:<key>`` or a plain 32-character secret."""
        if value.startswith("base64:"):
            return cls.from_base64(value[len("base64:"):])
        return cls.from_text(value)

    @classmethod
    def generate(cls) -> "EncryptionKey":
        return cls(AESGCM.generate_key(bit_length=KEY_SIZE_BYTES * 8))

    def to_base64(self) -> str:
        return base64.urlsafe_b64encode(self._raw).decode("ascii")

    @property
    def raw(self) -> bytes:
        return self._raw

    def __repr__(self) -> str:
        return "EncryptionKey(<redacted>)"


class TokenCodec:
    """Seals :class:`LinkPayload` values into opaque, url-safe tokens."""

    def __init__(self, key: EncryptionKey):
        self._aead = AESGCM(key.raw)

    def encode(self, payload: LinkPayload) -> str:
        try:
            plaintext = json.dumps(
                payload.as_dict(),
                sort_keys=True,
                separators=(",", ":"),
                ensure_ascii=False,
                allow_nan=False,
            ).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncodingError(f"failed to serialise link payload: {exc}") from exc

        nonce = os.urandom(NONCE_SIZE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext, None)
        return base64.urlsafe_b64encode(nonce + sealed).decode("ascii")

    def decode(self, token: str) -> LinkPayload:
        if not token:
            raise InvalidTokenError("token is empty")
        try:
            blob = base64.b64decode(token.encode("ascii"), altchars=b"-_", validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
            raise InvalidTokenError("token is not valid base64") from exc

        if len(blob) < MIN_TOKEN_BYTES:
            raise InvalidTokenError("token is too short")

        nonce, sealed = blob[:NONCE_SIZE_BYTES], blob[NONCE_SIZE_BYTES:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise InvalidTokenError("token failed authentication") from exc

        try:
            return LinkPayload.from_dict(json.loads(plaintext.decode("utf-8")))
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("token payload is malformed") from exc


__all__ = ["EncryptionKey", "MIN_TOKEN_BYTES", "TokenCodec"]
