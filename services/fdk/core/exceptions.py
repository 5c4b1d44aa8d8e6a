"""
Custom exception classes.

Represent failures of the request/response adaptation layer. Only the seams in
the runner turn these into APIError entries; everything else propagates.
"""

from typing import List, Optional

from ..models.response import APIError


class FdkError(Exception):
    """Base exception class for the function runtime."""

    pass


class EnvelopeDecodeError(FdkError):
    """Raised when the inbound envelope cannot be decoded."""

    pass


class EnvelopeTooLargeError(EnvelopeDecodeError):
    """Raised when the inbound envelope exceeds the size ceiling."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"request body exceeds limit of {limit} bytes")


class MissingMetaError(EnvelopeDecodeError):
    """Raised when a multipart submission carries no meta field."""

    def __init__(self):
        super().__init__("no meta field provided in multipart form submission")


class FileMaterializeError(FdkError):
    """Raised when a file body cannot be written to its destination."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(f"{message}: {cause}" if cause is not None else message)


class RouteRegistrationError(FdkError):
    """Raised for invalid route registrations. This is a startup error."""

    pass


class RegistryError(FdkError):
    """Raised for duplicate or unknown runner/config loader names."""

    pass


class ConfigNotFoundError(FdkError):
    """Raised when no config is present at the expected source."""

    def __init__(self, detail: str = "no config provided"):
        super().__init__(detail)


class ConfigError(FdkError):
    """
    Raised when the function config cannot be read, decoded or validated.

    Carries the APIError that is served to every caller until restart.
    """

    def __init__(self, api_error: APIError, cause: Optional[BaseException] = None):
        self.api_error = api_error
        self.cause = cause
        super().__init__(api_error.message)


class MissingAccessTokenError(FdkError):
    """Raised when an API client is requested without an access token."""

    def __init__(self):
        super().__init__("api client requires an access token")


class SchemaValidationError(FdkError):
    """Raised when a request or response payload does not satisfy its JSON schema."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        detail = "; ".join(self.errors)
        super().__init__(f"{message}: {detail}" if detail else message)
