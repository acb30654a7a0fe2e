from .codec import KeyMaterial, Payload, TokenCodec, TokenDecodeError
from .expiry import (
    TokenExpiredError,
    format_instant,
    remaining_seconds,
    resolve_live_payload,
)

__all__ = [
    "KeyMaterial",
    "Payload",
    "TokenCodec",
    "TokenDecodeError",
    "TokenExpiredError",
    "format_instant",
    "remaining_seconds",
    "resolve_live_payload",
]
