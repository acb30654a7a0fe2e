"""
Best-effort rewriting of relayed HTML so relative references keep working.

Relative ``href``/``src`` values are resolved against the true origin URL and a
``<base>`` element pointing at the origin is injected right after ``<head>``,
so anything the regex pass misses is still resolved by the browser.

This is a text transformation, not an HTML parser. Known blind spots:

- attribute values whose quotes are escaped or mixed inside the value
- ``url()`` references in inline styles and stylesheets
- ``srcset`` candidate lists
- query strings containing encoded path separators (``%2F``) are resolved as-is
"""

import html as _html_escape
import logging
import re
from urllib.parse import urljoin

logger = logging.getLogger("uvicorn.error")

_ATTR_PATTERN = re.compile(
    r"""(?P<prefix>(?<![\w-])(?:href|src)\s*=\s*)(?P<quote>["'])(?P<value>.*?)(?P=quote)""",
    re.IGNORECASE | re.DOTALL,
)
_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")
_HEAD_OPEN_PATTERN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HTML_OPEN_PATTERN = re.compile(r"<html(?:\s[^>]*)?>", re.IGNORECASE)


def is_relative_reference(value: str) -> bool:
    """True for references that depend on the document's own location."""
    candidate = value.strip()
    if not candidate:
        return False
    if candidate.startswith("#") or candidate.startswith("//"):
        return False
    # Covers data:, javascript:, mailto: and every absolute URL
    return not _SCHEME_PATTERN.match(candidate)


def _rewrite_attribute(match: re.Match, origin_url: str) -> str:
    raw_value = match.group("value")
    value = _html_escape.unescape(raw_value).strip()

    if not is_relative_reference(value):
        # Absolute links, same-origin ones included, keep pointing at their
        # target and are not routed back through the relay.
        return match.group(0)

    resolved = urljoin(origin_url, value)
    quote = match.group("quote")
    return f"{match.group('prefix')}{quote}{_html_escape.escape(resolved, quote=True)}{quote}"


def _inject_base(text: str, origin_url: str) -> str:
    base_tag = f'<base href="{_html_escape.escape(origin_url, quote=True)}">'
    head = _HEAD_OPEN_PATTERN.search(text)
    if head:
        return f"{text[:head.end()]}{base_tag}{text[head.end():]}"
    html_open = _HTML_OPEN_PATTERN.search(text)
    if html_open:
        return (
            f"{text[:html_open.end()]}<head>{base_tag}</head>{text[html_open.end():]}"
        )
    return f"{base_tag}{text}"


def rewrite_html_text(text: str, origin_url: str) -> str:
    rewritten = _ATTR_PATTERN.sub(lambda m: _rewrite_attribute(m, origin_url), text)
    return _inject_base(rewritten, origin_url)


def rewrite_html(body: bytes, origin_url: str, encoding: str = "utf-8") -> bytes:
    """
    Rewrite an HTML document fetched from ``origin_url``.

    Any failure (undecodable bytes, unknown encoding, regex trouble) returns the
    original body untouched.
    """
    if not body:
        return body
    try:
        text = body.decode(encoding)
        rewritten = rewrite_html_text(text, origin_url)
        return rewritten.encode(encoding, errors="xmlcharrefreplace")
    except Exception as e:
        logger.warning(f"[HtmlRewrite] Returning original body, rewrite failed: {e}")
        return body
