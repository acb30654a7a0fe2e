"""
Streaming relay from the origin URL carried by a token to the client.

Only an explicit set of inbound headers reaches the origin. Non-HTML bodies
are streamed raw (byte-for-byte, still compressed if the origin compressed
them) while HTML is buffered, decoded and handed to the HTML rewriter.

A :class:`RelayStream` owns the outbound client and response for the lifetime
of the client response. Its ``cancelled`` event is the single teardown signal:
a client disconnect (task cancellation or the per-chunk disconnect check) and
an origin read failure both set it, and both paths close the origin connection.
"""

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional

import httpx
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace

from linkrelay.relay.html_rewriter import rewrite_html
from linkrelay.vars import RELAY_CHUNK_SIZE, RELAY_TIMEOUT

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

DEFAULT_CACHE_CONTROL = "no-cache"

# Origin response headers copied onto streamed (non-HTML) responses
MIRRORED_HEADERS = (
    "content-type",
    "content-length",
    "content-range",
    "content-encoding",
    "accept-ranges",
    "cache-control",
    "etag",
    "last-modified",
)

# Content codings httpx can decode when HTML has to be read for rewriting
DECODABLE_ENCODINGS = ("gzip", "deflate", "br", "zstd", "identity")

# Close tasks that must outlive a cancelled request task
_pending_closes: set = set()


class ForwardableHeader(str, Enum):
    """Inbound headers allowed to reach the origin. Everything else is dropped."""

    RANGE = "range"
    USER_AGENT = "user-agent"
    ACCEPT = "accept"
    ACCEPT_ENCODING = "accept-encoding"


class OriginError(Exception):
    """The origin could not be fetched or answered with a non-success status."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


class RelayStreamError(Exception):
    """The origin body failed after the client response had started."""


def forwardable_headers(
    inbound: Mapping[str, str],
) -> Dict[ForwardableHeader, str]:
    """Pick the allow-listed headers out of the inbound request headers."""
    selected: Dict[ForwardableHeader, str] = {}
    for header in ForwardableHeader:
        value = inbound.get(header.value)
        if value:
            selected[header] = value
    return selected


def decodable_accept_encoding(value: Optional[str]) -> str:
    """Keep only the codings the relay can undo, ``identity`` if none remain."""
    if not value:
        return "identity"
    kept = []
    for part in value.split(","):
        coding = part.split(";")[0].strip().lower()
        if coding in DECODABLE_ENCODINGS:
            kept.append(part.strip())
    return ", ".join(kept) or "identity"


def outbound_headers(selected: Dict[ForwardableHeader, str]) -> Dict[str, str]:
    headers = {header.value: value for header, value in selected.items()}
    # Without this httpx would ask for gzip on behalf of a client that never did
    headers[ForwardableHeader.ACCEPT_ENCODING.value] = decodable_accept_encoding(
        selected.get(ForwardableHeader.ACCEPT_ENCODING)
    )
    return headers


def is_html(content_type: str) -> bool:
    mime = content_type.split(";")[0].strip().lower()
    return mime in ("text/html", "application/xhtml+xml")


def build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(RELAY_TIMEOUT),
        follow_redirects=True,
    )


class RelayStream:
    """An open origin response being piped to one client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        chunk_size: int = RELAY_CHUNK_SIZE,
    ):
        self.client = client
        self.response = response
        self.cancelled = asyncio.Event()
        self._is_disconnected = is_disconnected
        self._chunk_size = chunk_size
        self._close_task: Optional[asyncio.Task] = None
        self.bytes_sent = 0
        self.completed = False

    def cancel(self) -> None:
        self.cancelled.set()

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()

    def _schedule_close(self) -> asyncio.Task:
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self.aclose())
            _pending_closes.add(self._close_task)
            self._close_task.add_done_callback(_pending_closes.discard)
        return self._close_task

    async def release(self) -> None:
        """Close the origin side, cancelling first unless the body was fully sent."""
        if not self.completed:
            self.cancel()
        # Shielded so a cancelled request task still closes the origin side
        await asyncio.shield(self._schedule_close())

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_raw(self._chunk_size):
                if self.cancelled.is_set():
                    break
                if self._is_disconnected is not None and await self._is_disconnected():
                    logger.info("[Relay] Client disconnected, cancelling origin stream")
                    self.cancel()
                    break
                self.bytes_sent += len(chunk)
                yield chunk
            self.completed = not self.cancelled.is_set()
        except asyncio.CancelledError:
            logger.info("[Relay] Client went away mid-stream, cancelling origin stream")
            raise
        except httpx.HTTPError as e:
            self.cancel()
            logger.error(
                f"[Relay] Origin stream failed after {self.bytes_sent} bytes: {e}"
            )
            raise RelayStreamError(str(e)) from e
        finally:
            await self.release()


class RelayResponse(StreamingResponse):
    """Streams a :class:`RelayStream` and releases it however the send ends.

    The body iterator never starts when sending the response head fails, so
    its own cleanup cannot be relied on to close the origin connection.
    """

    def __init__(self, stream: RelayStream, **kwargs):
        super().__init__(stream.iter_bytes(), **kwargs)
        self.relay_stream = stream

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.relay_stream.release()


async def open_origin(
    url: str,
    selected: Dict[ForwardableHeader, str],
) -> tuple[httpx.AsyncClient, httpx.Response]:
    """Send the outbound GET and return once the origin's headers arrived."""
    client = build_client()
    try:
        request = client.build_request("GET", url, headers=outbound_headers(selected))
        response = await client.send(request, stream=True)
    except httpx.TimeoutException as e:
        await client.aclose()
        logger.error(f"[Relay] Origin timeout: {e}")
        raise OriginError(504, "Gateway timeout")
    except httpx.HTTPError as e:
        await client.aclose()
        logger.error(f"[Relay] Failed to fetch origin: {e}")
        raise OriginError(502, "Bad gateway - cannot fetch original content")
    except BaseException:
        # Includes task cancellation while waiting for the origin's headers
        await asyncio.shield(client.aclose())
        raise
    return client, response


def streamed_response_headers(origin_headers: httpx.Headers) -> Dict[str, str]:
    headers = {}
    for name in MIRRORED_HEADERS:
        value = origin_headers.get(name)
        if value:
            headers[name] = value
    headers.setdefault("accept-ranges", "bytes")
    headers.setdefault("cache-control", DEFAULT_CACHE_CONTROL)
    return headers


async def relay_origin(
    url: str,
    inbound_headers: Mapping[str, str],
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> Response:
    """
    Fetch ``url`` and build the client response.

    Raises OriginError when the origin is unreachable or answers with a
    non-success status; the status is mirrored where the origin provided one.
    """
    with tracer.start_as_current_span("relay_origin") as span:
        selected = forwardable_headers(inbound_headers)
        if ForwardableHeader.RANGE in selected:
            logger.info(f"[Relay] Range requested: {selected[ForwardableHeader.RANGE]}")
            span.set_attribute("relay.range", selected[ForwardableHeader.RANGE])

        client, response = await open_origin(url, selected)
        content_type = response.headers.get("content-type", "")
        span.set_attribute("relay.status_code", response.status_code)
        span.set_attribute("relay.content_type", content_type)
        logger.info(
            f"[Relay] Origin responded {response.status_code} "
            f"content-type={content_type or '-'} "
            f"accept-ranges={response.headers.get('accept-ranges', '-')}"
        )

        if not response.is_success:
            await response.aclose()
            await client.aclose()
            raise OriginError(response.status_code, "Error fetching original content")

        if is_html(content_type):
            try:
                body = await response.aread()
            except httpx.HTTPError as e:
                logger.error(f"[Relay] Failed to read HTML from origin: {e}")
                raise OriginError(502, "Bad gateway - cannot read original content")
            finally:
                await response.aclose()
                await client.aclose()
            encoding = response.charset_encoding or "utf-8"
            rewritten = rewrite_html(body, url, encoding)
            span.set_attribute("relay.html_rewritten", True)
            return Response(
                content=rewritten,
                status_code=response.status_code,
                media_type=content_type,
            )

        stream = RelayStream(client, response, is_disconnected=is_disconnected)
        return RelayResponse(
            stream,
            status_code=response.status_code,
            headers=streamed_response_headers(response.headers),
        )
