"""
Core logic package.

Provides the envelope codec, body materialization, routing and handler adapters.
"""

from .codec import decode_request, decode_response, encode_request, encode_response
from .compression import compress_gzip
from .files import normalize_file, write_file
from .handlers import (
    Handler,
    HandlerFn,
    err_handler,
    handle_fn_of,
    handle_workflow,
    handle_workflow_of,
    handler_fn_of_ok,
)
from .mux import Mux

__all__ = [
    "Handler",
    "HandlerFn",
    "Mux",
    "compress_gzip",
    "decode_request",
    "decode_response",
    "encode_request",
    "encode_response",
    "err_handler",
    "handle_fn_of",
    "handle_workflow",
    "handle_workflow_of",
    "handler_fn_of_ok",
    "normalize_file",
    "write_file",
]
