"""
RequestContext management.
Use ContextVar to share the Trace ID across async execution.
"""

import uuid
from contextvars import ContextVar
from typing import Optional


# Context variable for the Trace ID (opaque, supplied by the platform envelope).
_trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
# Context variable for Request ID (UUID).
_request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_trace_id() -> Optional[str]:
    """Get the current Trace ID."""
    return _trace_id_var.get()


def get_request_id() -> Optional[str]:
    """Get the current Request ID."""
    return _request_id_var.get()


def generate_request_id() -> str:
    """
    Generate and set a new Request ID (UUID) for the current context.
    """
    new_id = str(uuid.uuid4())
    _request_id_var.set(new_id)
    return new_id


def set_trace_id(trace_id: Optional[str]) -> Optional[str]:
    """
    Set the Trace ID. Empty values clear it.

    Args:
        trace_id: trace identifier propagated by the caller

    Returns:
        The Trace ID that was set
    """
    value = trace_id or None
    _trace_id_var.set(value)
    return value


def clear_trace_id() -> None:
    """Clear the Trace ID context."""
    _trace_id_var.set(None)


def clear_request_id() -> None:
    """Clear the Request ID context."""
    _request_id_var.set(None)
