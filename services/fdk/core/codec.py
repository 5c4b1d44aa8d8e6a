"""
Envelope codec.

Decodes the platform's inbound envelope (JSON, or a multipart form with a
"meta" field) into a Request, and encodes a Response into the outbound
envelope: {"body", "code", "errors", "headers"}.
"""

import io
import json
import logging
from typing import Any, AsyncIterator, Dict

import pydantic_core
from pydantic import BaseModel, ValidationError
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request as HTTPRequest

from ..models.complex_payload import ComplexPayload
from ..models.envelope import RequestEnvelope, ResponseEnvelope
from ..models.file import File
from ..models.request import (
    Request,
    RequestOf,
    canonical_headers,
    header_dict,
    query_dict,
    query_params,
)
from ..models.response import APIError, Response
from .exceptions import EnvelopeDecodeError, EnvelopeTooLargeError, MissingMetaError

logger = logging.getLogger(__name__)

MB = 1 << 20
MAX_ENVELOPE_BYTES = 5 * MB

MULTIPART_FORM_DATA = "multipart/form-data"


# ===========================================
# Decode
# ===========================================


async def decode_request(http_request: HTTPRequest) -> Request:
    """
    Decode the inbound HTTP request into a Request.

    Raises:
        EnvelopeDecodeError: oversized, malformed, or missing multipart meta.
    """
    content_type = http_request.headers.get("content-type", "")
    if content_type.startswith(MULTIPART_FORM_DATA):
        try:
            form = await http_request.form()
        except (MultiPartException, StarletteHTTPException) as e:
            detail = getattr(e, "message", None) or getattr(e, "detail", None) or str(e)
            raise EnvelopeDecodeError(f"failed to parse multipart form: {detail}") from e
        return decode_multipart_envelope(form)

    payload = await read_limited(http_request.stream(), MAX_ENVELOPE_BYTES)
    return decode_json_envelope(payload)


async def read_limited(stream: AsyncIterator[bytes], limit: int) -> bytes:
    """
    Read the whole stream, failing when it holds more than limit bytes.

    An oversized stream is still drained so the connection can be reused.
    """
    buf = bytearray()
    total = 0
    async for chunk in stream:
        total += len(chunk)
        if total <= limit:
            buf.extend(chunk)
    if total > limit:
        raise EnvelopeTooLargeError(limit)
    return bytes(buf)


def decode_json_envelope(payload: bytes) -> Request:
    try:
        envelope = RequestEnvelope.model_validate_json(payload)
    except ValidationError as e:
        raise EnvelopeDecodeError(f"failed to unmarshal request body: {e}") from e

    body = b""
    if "body" in envelope.model_fields_set:
        body = json.dumps(envelope.body, ensure_ascii=False).encode("utf-8")
    return envelope_to_request(envelope, io.BytesIO(body))


def decode_multipart_envelope(form: FormData) -> Request:
    meta = form.get("meta")
    if not isinstance(meta, str) or not meta:
        raise MissingMetaError()

    try:
        envelope = RequestEnvelope.model_validate_json(meta)
    except ValidationError as e:
        raise EnvelopeDecodeError(
            f"failed to json unmarshal meta from multipart field: {e}"
        ) from e

    if is_complex_form(form):
        return envelope_to_request(envelope, complex_payload_from_form(form))

    body = form.get("body")
    if isinstance(body, UploadFile):
        return envelope_to_request(envelope, body.file)
    if isinstance(body, str):
        return envelope_to_request(envelope, io.BytesIO(body.encode("utf-8")))
    raise EnvelopeDecodeError("failed to read multipart body form file: no body field")


def is_complex_form(form: FormData) -> bool:
    """Multiple file parts, or at least one file part and a value other than meta."""
    files, values = 0, set()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            files += 1
        elif key != "meta":
            values.add(key)
    return files > 1 or (files >= 1 and len(values) > 0)


def complex_payload_from_form(form: FormData) -> ComplexPayload:
    payload = ComplexPayload()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            payload.files[value.filename or key] = value.file
        elif key == "body" and payload.body is None:
            payload.body = value.encode("utf-8")
    return payload


def normalize_path(url: str) -> str:
    if not url:
        return "/"
    return url if url.startswith("/") else "/" + url


def envelope_to_request(envelope: RequestEnvelope, body: Any) -> Request:
    return Request(
        body=body,
        method=envelope.method,
        url=normalize_path(envelope.url),
        headers=canonical_headers(envelope.headers),
        queries=query_params(envelope.queries),
        context=envelope.context,
        access_token=envelope.access_token,
        trace_id=envelope.trace_id,
        fn_id=envelope.fn_id,
        fn_version=envelope.fn_version,
    )


# ===========================================
# Encode
# ===========================================


def marshal_body(body: Any) -> bytes:
    """JSON bytes of a response body."""
    if hasattr(body, "marshal_json"):
        return body.marshal_json()
    if isinstance(body, File):
        meta = {
            "content_type": body.content_type,
            "encoding": body.encoding,
            "filename": body.filename,
        }
        return json.dumps(meta).encode("utf-8")
    if isinstance(body, BaseModel):
        return body.model_dump_json().encode("utf-8")
    return pydantic_core.to_json(body)


def build_envelope(resp: Response) -> Dict[str, Any]:
    """
    Outbound envelope of resp as a JSON-ready dict; "code" is the resolved status.

    A body that fails to serialize is dropped and reported as an extra 500
    error, so the caller always receives a parseable envelope.
    """
    errors = list(resp.errors)
    out: Dict[str, Any] = {}

    if resp.body is not None:
        try:
            out["body"] = json.loads(marshal_body(resp.body))
        except Exception as e:
            logger.error("failed to marshal json payload with body", exc_info=True)
            errors.append(APIError(code=500, message=f"failed to marshal response body: {e}"))

    code = Response(code=resp.code, errors=errors).status_code
    out["code"] = code
    out["errors"] = [e.model_dump() for e in errors]
    if resp.headers:
        out["headers"] = {
            k: [v] if isinstance(v, str) else list(v) for k, v in resp.headers.items()
        }

    return out


def encode_response(resp: Response) -> bytes:
    """Encode resp into the outbound envelope."""
    return dump_envelope(build_envelope(resp))


def dump_envelope(envelope: Dict[str, Any]) -> bytes:
    return json.dumps(envelope, ensure_ascii=False, default=str).encode("utf-8")


def decode_response(raw: bytes) -> Response:
    """
    Decode an outbound envelope back into a Response; body holds the parsed JSON.

    Raises:
        EnvelopeDecodeError: raw is not a response envelope.
    """
    try:
        envelope = ResponseEnvelope.model_validate_json(raw)
    except ValidationError as e:
        raise EnvelopeDecodeError(f"failed to unmarshal response body: {e}") from e
    return Response(
        body=envelope.body,
        code=envelope.code,
        errors=list(envelope.errors),
        headers=dict(envelope.headers),
    )


_NO_BODY = object()


def _request_body_value(body: Any) -> Any:
    if body is None:
        return _NO_BODY
    if isinstance(body, (bytes, bytearray)) or hasattr(body, "read"):
        raw = bytes(body) if isinstance(body, (bytes, bytearray)) else body.read()
        return json.loads(raw) if raw else _NO_BODY
    return pydantic_core.to_jsonable_python(body)


def encode_request(request: RequestOf[Any]) -> bytes:
    """
    Encode a request as the platform's inbound JSON envelope.

    Raises:
        ValueError: the request body is not JSON.
    """
    envelope: Dict[str, Any] = {
        "access_token": request.access_token,
        "context": request.context,
        "fn_id": request.fn_id,
        "fn_version": request.fn_version,
        "method": request.method,
        "params": {
            "header": header_dict(request.headers),
            "query": query_dict(request.queries),
        },
        "url": request.url,
        "trace_id": request.trace_id,
    }
    body = _request_body_value(request.body)
    if body is not _NO_BODY:
        envelope["body"] = body
    return json.dumps(envelope, ensure_ascii=False).encode("utf-8")
