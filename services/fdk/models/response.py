"""
Response models.

The handler-facing Response plus the error entry carried on the wire.
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import pydantic_core
from pydantic import BaseModel


class APIError(BaseModel):
    """An error that is shared back to the caller."""

    code: int
    message: str

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class JSON:
    """Defers JSON serialization of a value until the response is encoded."""

    def __init__(self, value: Any):
        self.value = value

    def marshal_json(self) -> bytes:
        return pydantic_core.to_json(self.value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, JSON) and other.value == self.value

    def __repr__(self) -> str:
        return f"JSON({self.value!r})"


@dataclass
class Response:
    """
    Response returned by a handler.

    body is either a JSON-producing value (see JSON) or a File. A code of zero
    means the status is derived from the errors.
    """

    body: Any = None
    code: int = 0
    errors: List[APIError] = field(default_factory=list)
    headers: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        """
        Resolved status: the explicit code, else the highest error code, else 200.
        """
        if self.code:
            return self.code
        code = max((e.code for e in self.errors), default=0)
        return code or int(HTTPStatus.OK)


def err_resp(*errs: APIError) -> Response:
    """
    Create an errors-only response.

    The highest code from the errors is set as the response code.
    """
    resp = Response(errors=list(errs))
    resp.code = resp.status_code
    return resp


def api_error(status: int, message: str, detail: Optional[str] = None) -> APIError:
    if detail:
        message = f"{message}: {detail}"
    return APIError(code=int(status), message=message)
