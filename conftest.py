# Ensure tests import modules from this service directory first and that the
# application can derive its token key at import time.
import os
import sys

import pytest

os.environ.setdefault("SECRET", "test-secret-for-unit-tests")

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)


@pytest.fixture
def codec():
    """Token codec keyed like the application under test."""
    from linkrelay.token import KeyMaterial, TokenCodec

    return TokenCodec(KeyMaterial.from_secret(os.environ["SECRET"]))


@pytest.fixture
def origin(monkeypatch):
    """Serve outbound relay requests from an in-process handler.

    Call the fixture with a handler ``request -> httpx.Response``; it returns the
    list of requests the mock origin received.
    """
    import httpx
    from linkrelay.relay import fetcher

    seen = []

    def install(handler):
        def recording_handler(request):
            seen.append(request)
            return handler(request)

        monkeypatch.setattr(
            fetcher,
            "build_client",
            lambda: httpx.AsyncClient(
                transport=httpx.MockTransport(recording_handler),
                follow_redirects=True,
            ),
        )
        return seen

    return install
