from .fetcher import (
    ForwardableHeader,
    OriginError,
    RelayResponse,
    RelayStream,
    RelayStreamError,
    relay_origin,
)
from .html_rewriter import rewrite_html

__all__ = [
    "ForwardableHeader",
    "OriginError",
    "RelayResponse",
    "RelayStream",
    "RelayStreamError",
    "relay_origin",
    "rewrite_html",
]
