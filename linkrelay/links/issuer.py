import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional
from urllib.parse import quote, urlparse

from linkrelay.token import Payload, TokenCodec
from linkrelay.utils import token_fingerprint
from linkrelay.vars import BASE_PATH, MAX_EXPIRY_SECONDS, PUBLIC_URL, REDIRECT_PATH

logger = logging.getLogger("uvicorn.error")

ALLOWED_SCHEMES = {"http", "https"}


class LinkValidationError(Exception):
    """Raised when a shorten request carries an unusable URL or TTL."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class IssuedLink:
    short_url: str
    token: str
    exp: int
    original_url: str
    expiry_seconds: int

    @property
    def expires_at(self) -> str:
        return format_expires_at(self.exp)


def format_expires_at(exp: int) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    moment = datetime.fromtimestamp(exp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_original_url(original_url: str) -> str:
    if not isinstance(original_url, str) or not original_url.strip():
        raise LinkValidationError("originalUrl is required")
    candidate = original_url.strip()
    try:
        parsed = urlparse(candidate)
    except ValueError:
        raise LinkValidationError("originalUrl must be a valid absolute URL")
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        raise LinkValidationError(
            "originalUrl must be an absolute http(s) URL, e.g. https://example.com"
        )
    return candidate


def validate_expiry_seconds(expiry_seconds: int) -> int:
    if isinstance(expiry_seconds, bool) or not isinstance(expiry_seconds, int):
        raise LinkValidationError("expirySeconds must be an integer")
    if not 0 < expiry_seconds <= MAX_EXPIRY_SECONDS:
        raise LinkValidationError(
            f"expirySeconds must be between 1 and {MAX_EXPIRY_SECONDS}"
        )
    return expiry_seconds


def _first_value(raw: Optional[str]) -> str:
    # Proxies may append to forwarded headers, the client-facing value comes first
    if not raw:
        return ""
    return raw.split(",")[0].strip()


def resolve_base_url(
    headers: Mapping[str, str], scheme: str, netloc: str, public_url: str = PUBLIC_URL
) -> str:
    """
    Build the externally visible ``scheme://host`` for links issued on this request.

    Forwarded headers only shape the returned address; nothing else trusts them.
    """
    if public_url:
        return public_url.rstrip("/")
    proto = _first_value(headers.get("x-forwarded-proto")) or scheme
    host = (
        _first_value(headers.get("x-forwarded-host"))
        or headers.get("host", "")
        or netloc
    )
    return f"{proto}://{host}"


def build_resolve_path(token: str, prefix: str = REDIRECT_PATH) -> str:
    return f"{BASE_PATH}{prefix}/{quote(token, safe='')}"


def issue_link(
    codec: TokenCodec,
    original_url: str,
    expiry_seconds: int,
    base_url: str,
    now: Optional[float] = None,
) -> IssuedLink:
    url = validate_original_url(original_url)
    ttl = validate_expiry_seconds(expiry_seconds)

    current = int(time.time() if now is None else now)
    payload = Payload(url=url, exp=current + ttl)
    token = codec.encrypt(payload)
    short_url = f"{base_url.rstrip('/')}{build_resolve_path(token)}"

    logger.info(
        f"[Shorten] Issued link token={token_fingerprint(token)} ttl={ttl}s exp={payload.exp}"
    )
    logger.debug(f"[Shorten] Link {token_fingerprint(token)} fronts {url}")
    return IssuedLink(
        short_url=short_url,
        token=token,
        exp=payload.exp,
        original_url=url,
        expiry_seconds=ttl,
    )
