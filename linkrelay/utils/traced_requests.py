import logging
from typing import Optional, Dict
from contextlib import contextmanager

from opentelemetry.trace import Tracer

from linkrelay.utils import token_fingerprint

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    token: Optional[str],
    start_message: str,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a span, set common attributes, and log a start message.

    The raw token never lands on the span; only its fingerprint does.
    """
    with tracer.start_as_current_span(operation) as span:
        if token:
            span.set_attribute("link.token_fingerprint", token_fingerprint(token))
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.info(start_message)
        yield span
