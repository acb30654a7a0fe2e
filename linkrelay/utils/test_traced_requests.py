import logging

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

from linkrelay.utils import token_fingerprint
from linkrelay.utils.traced_requests import traced_request


def _tracer():
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider.get_tracer(__name__), exporter


def test_span_carries_fingerprint_and_message_is_logged(caplog):
    tracer, exporter = _tracer()
    token = "c2VjcmV0LWl2:c2VjcmV0LWN0"
    message = f"[Relay] Relaying token {token_fingerprint(token)}"

    with caplog.at_level(logging.INFO, logger="uvicorn.error"):
        with traced_request(
            tracer, "relay", token, message, extra_attrs={"link.kind": "relay"}
        ):
            pass

    (span,) = exporter.get_finished_spans()
    assert span.name == "relay"
    assert span.attributes["link.token_fingerprint"] == token_fingerprint(token)
    assert span.attributes["link.kind"] == "relay"
    assert token not in str(dict(span.attributes))
    assert message in caplog.text
    assert token not in caplog.text


def test_missing_token_sets_no_fingerprint():
    tracer, exporter = _tracer()

    with traced_request(tracer, "service_info", None, "[Info] Service info requested"):
        pass

    (span,) = exporter.get_finished_spans()
    assert "link.token_fingerprint" not in span.attributes
