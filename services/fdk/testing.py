"""
Test kit for function authors.

local_runner() serves the function through the real transport app, without a
socket, so a test sees exactly the envelopes the platform would. The want_*
matchers assert on a handler's Response; schema_ok() and handler_schema_ok()
check request/response JSON schemas against a handler.
"""

import asyncio
import dataclasses
import gzip
import io
import json
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Union

import httpx
import pydantic_core
from jsonschema import validators

from .core.codec import decode_response, encode_request, marshal_body
from .core.exceptions import SchemaValidationError
from .core.handlers import as_handler
from .models.context import HandlerContext
from .models.file import File
from .models.request import Request, RequestOf
from .models.response import APIError, Response
from .services.runner_http import create_app

RUNNER_BASE_URL = "http://fdk.local"
HANDLER_TIMEOUT = 5.0

Schema = Union[str, Mapping[str, Any]]
WantFn = Callable[[Response], None]


def local_runner(
    cfg: Any,
    new_handler_fn: Callable[[logging.Logger, Any], Any],
    logger: Optional[logging.Logger] = None,
) -> Callable[[RequestOf[Any]], Awaitable[Response]]:
    """
    Build the function's handler with cfg and return an async callable that
    sends one Request through the transport and returns the decoded Response.
    """
    logger = logger or logging.getLogger("fdk.testing")
    handler = as_handler(new_handler_fn(logger, cfg))
    app = create_app(handler, logger, asyncio.Event())

    async def invoke(request: RequestOf[Any]) -> Response:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=RUNNER_BASE_URL) as client:
            resp = await client.post(
                "/",
                content=encode_request(request),
                headers={"Content-Type": "application/json"},
            )
        return decode_response(resp.content)

    return invoke


# ===========================================
# Request helpers
# ===========================================


def request_of(r: RequestOf[Any]) -> Request:
    """Request equivalent of r, with the typed body encoded as its JSON payload."""
    values = {f.name: getattr(r, f.name) for f in dataclasses.fields(r)}
    values["body"] = io.BytesIO(pydantic_core.to_json(r.body))
    return Request(**values)


def gzip_reader(v: str) -> io.BytesIO:
    """Readable stream holding the gzip-compressed UTF-8 bytes of v."""
    return io.BytesIO(gzip.compress(v.encode("utf-8")))


# ===========================================
# Response matchers
# ===========================================


def want(got: Response, *wants: WantFn) -> None:
    """Run every matcher against got."""
    for w in wants:
        w(got)


def want_errs(*wants: APIError) -> WantFn:
    """Errors of the response match wants, in order."""
    expected = list(wants)

    def check(got: Response) -> None:
        if len(got.errors) != len(expected):
            raise AssertionError(
                f"number of errors mismatched\n\twant:\t{expected}\n\tgot:\t{got.errors}"
            )
        for i, (w, e) in enumerate(zip(expected, got.errors)):
            if w != e:
                raise AssertionError(f"err[{i}] does not match:\n\twant:\t{w}\n\tgot:\t{e}")

    return check


def want_no_errs() -> WantFn:
    def check(got: Response) -> None:
        if got.errors:
            errs = json.dumps([e.model_dump() for e in got.errors], indent=2)
            raise AssertionError(f"received unexpected errors:\n\tgot:\t{errs}")

    return check


def want_code(code: int) -> WantFn:
    def check(got: Response) -> None:
        _eq(code, got.code, "code")

    return check


def want_file_match(expected: File) -> WantFn:
    """Body is a File with the same metadata and contents as expected."""

    def check(got: Response) -> None:
        f = _file_body(got)
        _file_info_eq(expected, f)
        _eq(_read_all(expected.contents), _read_all(f.contents), "contents")

    return check


def want_gzip_file_match(expected: File) -> WantFn:
    """
    As want_file_match, comparing the decompressed contents of both files.

    Both expected and the body must hold gzip data.
    """

    def check(got: Response) -> None:
        f = _file_body(got)
        _file_info_eq(expected, f)
        _eq(_gunzip(expected.contents), _gunzip(f.contents), "contents")

    return check


def _eq(expected: Any, got: Any, label: str) -> None:
    if expected != got:
        raise AssertionError(f"{label} values do not match:\n\twant:\t{expected!r}\n\tgot:\t{got!r}")


def _file_body(got: Response) -> File:
    if not isinstance(got.body, File):
        raise AssertionError(f"did not receive a File body; got:\t{type(got.body).__name__}")
    return got.body


def _file_info_eq(expected: File, got: File) -> None:
    _eq(expected.content_type, got.content_type, "content_type")
    _eq(expected.encoding, got.encoding, "encoding")
    _eq(expected.filename, got.filename, "filename")


def _read_all(stream: Any) -> bytes:
    if stream is None:
        return b""
    if isinstance(stream, (bytes, bytearray)):
        return bytes(stream)
    try:
        return stream.read()
    finally:
        stream.close()


def _gunzip(stream: Any) -> bytes:
    return gzip.decompress(_read_all(stream))


# ===========================================
# JSON schema checks
# ===========================================


def _load_schema(schema: Schema) -> Mapping[str, Any]:
    if isinstance(schema, str):
        return json.loads(schema)
    return schema


def schema_ok(schema: Schema) -> None:
    """
    Raises:
        jsonschema.exceptions.SchemaError: schema is not a valid JSON schema.
        ValueError: schema is a string that is not JSON.
    """
    loaded = _load_schema(schema)
    validators.validator_for(loaded).check_schema(loaded)


def validate_schema(schema: Schema, payload: bytes) -> List[str]:
    """Messages of every violation of schema by the JSON document payload."""
    loaded = _load_schema(schema)
    try:
        instance = json.loads(payload) if payload else None
    except ValueError as e:
        return [f"payload is not JSON: {e}"]
    validator_cls = validators.validator_for(loaded)
    validator_cls.check_schema(loaded)
    return [err.message for err in validator_cls(loaded).iter_errors(instance)]


async def handler_schema_ok(
    handler: Any,
    request: RequestOf[Any],
    req_schema: Optional[Schema] = None,
    resp_schema: Optional[Schema] = None,
) -> None:
    """
    Check request against req_schema, run handler, then check the response
    body against resp_schema. Either schema may be omitted.

    Raises:
        SchemaValidationError: a payload violates its schema, or the response
            body cannot be serialized.
        jsonschema.exceptions.SchemaError: one of the schemas is not a valid JSON schema.
    """
    if req_schema:
        payload = _read_all(request.body)
        errs = validate_schema(req_schema, payload)
        if errs:
            raise SchemaValidationError("failed request schema validation", errs)
        request = request.with_body(io.BytesIO(payload))

    ctx = HandlerContext(trace_id=request.trace_id, logger=logging.getLogger("fdk.testing"))
    resp = await asyncio.wait_for(as_handler(handler).handle(ctx, request), HANDLER_TIMEOUT)

    if resp_schema:
        try:
            payload = marshal_body(resp.body)
        except Exception as e:
            raise SchemaValidationError("failed to marshal response payload", [str(e)]) from e
        errs = validate_schema(resp_schema, payload)
        if errs:
            raise SchemaValidationError("failed response schema validation", errs)
