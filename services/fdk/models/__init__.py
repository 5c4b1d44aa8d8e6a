"""
Data model definitions package.

Aggregates the models handlers and the runner work with.
"""

from .complex_payload import ComplexPayload
from .context import HandlerContext
from .envelope import EnvelopeParams, RequestEnvelope, ResponseEnvelope
from .file import File, FileMeta
from .request import (
    Field,
    Request,
    RequestOf,
    canonical_header_key,
    canonical_headers,
    header_dict,
    query_dict,
    query_params,
)
from .response import JSON, APIError, Response, api_error, err_resp
from .workflow import WorkflowActivity, WorkflowCtx, WorkflowTrigger

__all__ = [
    "APIError",
    "ComplexPayload",
    "EnvelopeParams",
    "Field",
    "File",
    "FileMeta",
    "HandlerContext",
    "JSON",
    "Request",
    "RequestEnvelope",
    "RequestOf",
    "Response",
    "ResponseEnvelope",
    "WorkflowActivity",
    "WorkflowCtx",
    "WorkflowTrigger",
    "api_error",
    "canonical_header_key",
    "canonical_headers",
    "err_resp",
    "header_dict",
    "query_dict",
    "query_params",
]
