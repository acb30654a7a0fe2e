"""
Symmetric token codec for expiring links.

A token is two URL-safe base64 segments joined by a colon::

    <iv>:<ciphertext>

The ciphertext is AES-256-CBC with PKCS#7 padding over the compact JSON form of
a :class:`Payload`. A fresh random IV is drawn for every encryption, so
encrypting the same payload twice yields different tokens.

No authentication tag is attached. Tampering is only detected when it breaks
the padding, the UTF-8 decoding or the JSON structure, and every one of those
failures surfaces as the same :class:`TokenDecodeError`.
"""

import base64
import binascii
import hashlib
import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

IV_SIZE = 16
BLOCK_SIZE_BITS = algorithms.AES.block_size
SEGMENT_SEPARATOR = ":"


class TokenDecodeError(Exception):
    """Raised for any token that cannot be turned back into a payload."""

    def __init__(self, message: str = "Invalid or tampered token"):
        self.message = message
        super().__init__(message)


class Payload(BaseModel):
    """The encrypted content of a token: origin address and absolute expiry."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: StrictStr
    exp: StrictInt


@dataclass(frozen=True)
class KeyMaterial:
    """Process-wide AES-256 key, derived once from the operator secret."""

    key: bytes

    @classmethod
    def from_secret(cls, secret: str) -> "KeyMaterial":
        if not secret:
            raise RuntimeError("SECRET environment variable is required")
        return cls(key=hashlib.sha256(secret.encode("utf-8")).digest())


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


def _b64decode(segment: str) -> bytes:
    return base64.b64decode(segment.encode("ascii"), altchars=b"-_", validate=True)


class TokenCodec:
    def __init__(self, key: KeyMaterial):
        self._key = key

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key.key), modes.CBC(iv))

    def encrypt(self, payload: Payload) -> str:
        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(payload.model_dump_json().encode("utf-8"))
        padded += padder.finalize()

        encryptor = self._cipher(iv).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{_b64encode(iv)}{SEGMENT_SEPARATOR}{_b64encode(ciphertext)}"

    def decrypt(self, token: str) -> Payload:
        iv_segment, separator, data_segment = (token or "").partition(
            SEGMENT_SEPARATOR
        )
        if not separator or not iv_segment or not data_segment:
            raise TokenDecodeError()

        try:
            iv = _b64decode(iv_segment)
            ciphertext = _b64decode(data_segment)
        except (binascii.Error, UnicodeEncodeError, ValueError):
            raise TokenDecodeError() from None

        block_bytes = BLOCK_SIZE_BITS // 8
        if len(iv) != IV_SIZE or not ciphertext or len(ciphertext) % block_bytes:
            raise TokenDecodeError()

        try:
            decryptor = self._cipher(iv).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return Payload.model_validate_json(plaintext.decode("utf-8"))
        except (ValueError, UnicodeDecodeError, ValidationError):
            raise TokenDecodeError() from None
