import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from opentelemetry import trace

from linkrelay.links import LinkValidationError, issue_link, resolve_base_url
from linkrelay.models import ErrorResponse, ServiceInfo, ShortenRequest, ShortenResponse
from linkrelay.pages import render_expired, render_invalid, render_shell
from linkrelay.relay import OriginError, relay_origin
from linkrelay.token import (
    TokenCodec,
    TokenDecodeError,
    TokenExpiredError,
    remaining_seconds,
    resolve_live_payload,
)
from linkrelay.utils.traced_requests import traced_request
from linkrelay.utils import token_fingerprint
from linkrelay.vars import BASE_PATH, REDIRECT_PATH, RELAY_PATH

router = APIRouter()
logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

if BASE_PATH:
    router.prefix = BASE_PATH
    logger.info(f"Using BASE_PATH: {BASE_PATH}")


def get_codec(request: Request) -> TokenCodec:
    return request.app.state.codec


def _request_base_url(request: Request) -> str:
    return resolve_base_url(request.headers, request.url.scheme, request.url.netloc)


@router.get("/", response_model=ServiceInfo)
async def service_info(request: Request):
    return ServiceInfo(
        status="ok",
        message="Link relay is running",
        baseUrl=_request_base_url(request),
        endpoints={
            "shorten": f"POST {BASE_PATH}/api/shorten",
            "redirect": f"GET {BASE_PATH}{REDIRECT_PATH}/{{token}}",
            "relay": f"GET {BASE_PATH}{RELAY_PATH}/{{token}}",
        },
    )


@router.post(
    "/api/shorten",
    response_model=ShortenResponse,
    responses={400: {"model": ErrorResponse}},
)
async def shorten(
    body: ShortenRequest,
    request: Request,
    codec: TokenCodec = Depends(get_codec),
):
    with traced_request(
        tracer,
        operation="shorten",
        token=None,
        start_message=f"[Shorten] Issuing link with ttl={body.expirySeconds}s",
    ) as span:
        try:
            link = issue_link(
                codec,
                body.originalUrl,
                body.expirySeconds,
                _request_base_url(request),
            )
        except LinkValidationError as e:
            logger.warning(f"[Shorten] Rejected request: {e.message}")
            span.set_attribute("link.rejected", e.message)
            return JSONResponse(status_code=400, content={"error": e.message})

        span.set_attribute("link.token_fingerprint", token_fingerprint(link.token))
        span.set_attribute("link.exp", link.exp)
        return ShortenResponse(
            shortUrl=link.short_url,
            expiresAt=link.expires_at,
            originalUrl=link.original_url,
            expirySeconds=link.expiry_seconds,
        )


@router.get(f"{REDIRECT_PATH}/{{token}}")
async def redirect_page(token: str, codec: TokenCodec = Depends(get_codec)):
    with traced_request(
        tracer,
        operation="redirect_page",
        token=token,
        start_message=f"[Redirect] Resolving token {token_fingerprint(token)}",
    ) as span:
        try:
            payload = resolve_live_payload(codec, token)
        except TokenExpiredError as e:
            logger.info(f"[Redirect] {e.message}")
            span.set_attribute("link.outcome", "expired")
            return render_expired(e.exp)
        except TokenDecodeError:
            logger.warning(f"[Redirect] Invalid token {token_fingerprint(token)}")
            span.set_attribute("link.outcome", "invalid")
            return render_invalid()

        span.set_attribute("link.outcome", "ok")
        return render_shell(token, remaining_seconds(payload))


@router.get(f"{RELAY_PATH}/{{token}}")
async def relay(token: str, request: Request, codec: TokenCodec = Depends(get_codec)):
    with traced_request(
        tracer,
        operation="relay",
        token=token,
        start_message=f"[Relay] Relaying token {token_fingerprint(token)}",
    ) as span:
        try:
            payload = resolve_live_payload(codec, token)
        except TokenExpiredError as e:
            logger.info(f"[Relay] {e.message}")
            span.set_attribute("link.outcome", "expired")
            return PlainTextResponse("Link expired", status_code=410)
        except TokenDecodeError as e:
            logger.warning(f"[Relay] Invalid token {token_fingerprint(token)}")
            span.set_attribute("link.outcome", "invalid")
            return PlainTextResponse(e.message, status_code=400)

        logger.debug(f"[Relay] Token {token_fingerprint(token)} fronts {payload.url}")
        try:
            return await relay_origin(
                payload.url, request.headers, is_disconnected=request.is_disconnected
            )
        except OriginError as e:
            logger.warning(f"[Relay] Origin error {e.status_code}: {e.detail}")
            span.set_attribute("link.outcome", "origin_error")
            return PlainTextResponse(e.detail, status_code=e.status_code)
        except Exception as e:
            logger.exception(f"[Relay] Unexpected relay failure: {e}")
            span.set_attribute("link.outcome", "error")
            return PlainTextResponse("Internal server error", status_code=500)
