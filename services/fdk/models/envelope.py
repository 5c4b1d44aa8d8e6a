"""
Wire envelope models.

Inbound: the JSON object (or multipart "meta" field) the platform posts.
Outbound: the JSON object returned to the platform.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .response import APIError


class EnvelopeParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    header: Optional[Dict[str, List[str]]] = None
    query: Optional[Dict[str, List[str]]] = None


class RequestEnvelope(BaseModel):
    """Inbound envelope. Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    fn_id: str = ""
    fn_version: int = 0
    body: Any = None
    context: Any = None
    access_token: str = ""
    method: str = ""
    params: Optional[EnvelopeParams] = None
    # Flat header/query keys sent by newer platform versions.
    header: Optional[Dict[str, List[str]]] = None
    query: Optional[Dict[str, List[str]]] = None
    url: str = ""
    trace_id: str = ""

    @property
    def headers(self) -> Dict[str, List[str]]:
        if self.params is not None and self.params.header is not None:
            return self.params.header
        return self.header or {}

    @property
    def queries(self) -> Dict[str, List[str]]:
        if self.params is not None and self.params.query is not None:
            return self.params.query
        return self.query or {}


class ResponseEnvelope(BaseModel):
    """Outbound envelope, also used to decode a runner's reply."""

    model_config = ConfigDict(extra="ignore")

    body: Any = None
    code: int = 0
    errors: List[APIError] = Field(default_factory=list)
    headers: Dict[str, List[str]] = Field(default_factory=dict)
