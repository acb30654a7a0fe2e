"""
HTML pages served on the redirect endpoint.

The shell page only ever references the relay path for the token it was
opened with. The decrypted origin URL is not passed in here at all, so it can
not leak into markup or headers.
"""

import html as _html_escape

from fastapi.responses import HTMLResponse

from linkrelay.links import build_resolve_path
from linkrelay.token import format_instant
from linkrelay.vars import RELAY_PATH

SHELL_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "frame-ancestors 'none'",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="referrer" content="no-referrer">
<title>{title}</title>
<style>
  html, body {{ margin: 0; height: 100%; font-family: system-ui, sans-serif; background: #0f172a; color: #e2e8f0; }}
  .notice {{ max-width: 32rem; margin: 20vh auto; padding: 2rem; border-radius: 12px; background: #1e293b; text-align: center; }}
  .notice h1 {{ margin-top: 0; font-size: 1.5rem; }}
  .brand {{ font-size: 0.8rem; letter-spacing: 0.1em; text-transform: uppercase; color: #94a3b8; }}
  .frame {{ position: fixed; inset: 0; width: 100%; height: 100%; border: 0; }}
  .countdown {{ position: fixed; right: 1rem; bottom: 1rem; padding: 0.4rem 0.8rem; border-radius: 999px; background: rgba(15, 23, 42, 0.8); font-size: 0.8rem; pointer-events: none; }}
</style>
</head>
<body>
{body}
</body>
</html>
"""


def _page(title: str, body: str, status_code: int, headers: dict | None = None) -> HTMLResponse:
    content = _PAGE_TEMPLATE.format(title=_html_escape.escape(title), body=body)
    merged = dict(SHELL_SECURITY_HEADERS)
    merged.update(headers or {})
    return HTMLResponse(content=content, status_code=status_code, headers=merged)


def _notice(heading: str, detail: str) -> str:
    return (
        '<div class="notice">'
        '<div class="brand">Link Relay</div>'
        f"<h1>{_html_escape.escape(heading)}</h1>"
        f"<p>{_html_escape.escape(detail)}</p>"
        "</div>"
    )


def format_countdown(seconds: int) -> str:
    seconds = max(0, int(seconds))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    clock = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{days}d {clock}" if days else clock


def render_shell(token: str, remaining: int) -> HTMLResponse:
    """Frame the relay for ``token`` and show a read-only countdown."""
    relay_src = _html_escape.escape(build_resolve_path(token, RELAY_PATH), quote=True)
    remaining = max(0, int(remaining))
    body = (
        f'<iframe class="frame" src="{relay_src}" '
        'referrerpolicy="no-referrer" allow="autoplay; fullscreen" allowfullscreen></iframe>\n'
        f'<div class="countdown" id="countdown" data-remaining="{remaining}" '
        f'aria-live="off">Expires in {format_countdown(remaining)}</div>\n'
        "<script>\n"
        "(function () {\n"
        "  var el = document.getElementById('countdown');\n"
        "  var left = parseInt(el.getAttribute('data-remaining'), 10);\n"
        "  function pad(n) { return n < 10 ? '0' + n : '' + n; }\n"
        "  function render() {\n"
        "    var d = Math.floor(left / 86400), h = Math.floor(left % 86400 / 3600);\n"
        "    var m = Math.floor(left % 3600 / 60), s = left % 60;\n"
        "    var clock = pad(h) + ':' + pad(m) + ':' + pad(s);\n"
        "    el.textContent = left > 0 ? 'Expires in ' + (d ? d + 'd ' : '') + clock : 'Link expired';\n"
        "  }\n"
        "  var timer = setInterval(function () {\n"
        "    left = Math.max(0, left - 1);\n"
        "    render();\n"
        "    if (left === 0) { clearInterval(timer); }\n"
        "  }, 1000);\n"
        "})();\n"
        "</script>"
    )
    return _page("Shared link", body, 200)


def render_expired(exp: int) -> HTMLResponse:
    return _page(
        "Link expired",
        _notice("This link has expired", f"It stopped working on {format_instant(exp)}."),
        410,
    )


def render_invalid() -> HTMLResponse:
    return _page(
        "Invalid link",
        _notice("Invalid link", "This link is malformed or was not issued by this service."),
        400,
    )
