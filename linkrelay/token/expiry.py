import time
from datetime import datetime, timezone
from typing import Optional

from linkrelay.token.codec import Payload, TokenCodec


class TokenExpiredError(Exception):
    """Raised for a well-formed token whose embedded expiry has passed."""

    def __init__(self, exp: int):
        self.exp = exp
        self.message = f"Link expired at {format_instant(exp)}"
        super().__init__(self.message)


def format_instant(exp: int) -> str:
    """Human readable UTC rendering of an epoch instant."""
    return datetime.fromtimestamp(exp, tz=timezone.utc).strftime(
        "%Y-%m-%d %H:%M:%S UTC"
    )


def resolve_live_payload(
    codec: TokenCodec, token: str, now: Optional[float] = None
) -> Payload:
    """
    Decode a token and make sure it has not expired yet.

    TokenDecodeError from the codec propagates unchanged; a payload whose
    ``exp`` is at or before ``now`` raises TokenExpiredError.
    """
    payload = codec.decrypt(token)
    current = time.time() if now is None else now
    if payload.exp <= current:
        raise TokenExpiredError(payload.exp)
    return payload


def remaining_seconds(payload: Payload, now: Optional[float] = None) -> int:
    current = time.time() if now is None else now
    return max(0, int(payload.exp - current))
