import logging
from typing import Sequence

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from linkrelay.routes import router
from linkrelay.token import KeyMaterial, TokenCodec
from linkrelay.vars import (
    CORS_ALLOW_ORIGINS,
    HOST,
    LOG_LEVEL,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    SECRET,
    SERVICE_NAME,
)

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out ASGI body spans from relayed streams.
    A single video relay would otherwise emit one span per forwarded chunk.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing(app: FastAPI) -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )
    FastAPIInstrumentor.instrument_app(app)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed shorten bodies as 400 {error} instead of FastAPI's 422."""
    errors = exc.errors()
    if any(err.get("type") == "missing" for err in errors):
        message = "originalUrl and expirySeconds required"
    elif errors:
        first = errors[0]
        field = first.get("loc", ["body"])[-1]
        message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    logger.warning(f"[Shorten] Rejected request body: {message}")
    return JSONResponse(status_code=400, content={"error": message})


def create_app(secret: str = SECRET) -> FastAPI:
    """
    Build the application. The token key is derived here, once, and a missing
    secret aborts startup with RuntimeError.
    """
    key = KeyMaterial.from_secret(secret)

    app = FastAPI(title=SERVICE_NAME)
    app.state.codec = TokenCodec(key)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    Instrumentator().instrument(app).expose(app)
    configure_tracing(app)

    app.include_router(router)
    return app


app = create_app()

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


def main() -> None:
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL)


if __name__ == "__main__":
    main()
