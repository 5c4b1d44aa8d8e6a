import io
import os

import pytest

# FdkConfig is instantiated at import time; keep it away from a developer's logging.yml.
os.environ.setdefault("LOG_CONFIG_PATH", "/tmp/fdk-missing-logging.yml")

from services.common.core import request_context  # noqa: E402
from services.fdk.models.request import Request, canonical_headers, query_params  # noqa: E402


@pytest.fixture(autouse=True)
def clean_request_context():
    request_context.clear_trace_id()
    request_context.clear_request_id()
    yield
    request_context.clear_trace_id()
    request_context.clear_request_id()


@pytest.fixture
def make_request():
    """Factory for handler-facing Requests with a JSON body."""

    def _make(
        body: bytes = b"",
        method: str = "POST",
        url: str = "/",
        headers=None,
        queries=None,
        context=None,
        **kwargs,
    ) -> Request:
        return Request(
            body=io.BytesIO(body),
            method=method,
            url=url,
            headers=canonical_headers(headers),
            queries=query_params(queries),
            context=context,
            **kwargs,
        )

    return _make
