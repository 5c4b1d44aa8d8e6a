"""
Request models.

Request is what the runner hands to a handler; RequestOf[T] is the same request
with its body decoded into T by one of the typed adapters.
"""

import io
from dataclasses import dataclass, field, fields
from typing import Any, BinaryIO, Generic, Iterable, List, Mapping, Optional, Tuple, TypeVar, Union

import httpx
from pydantic import BaseModel

T = TypeVar("T")

HeaderInput = Union[Mapping[str, Union[str, Iterable[str]]], Iterable[Tuple[str, str]], None]


def canonical_header_key(key: str) -> str:
    """
    Canonical MIME header key: first letter and each letter following a hyphen
    upper-cased, the rest lower-cased ("x-cs-traceid" -> "X-Cs-Traceid").

    Keys containing spaces or other invalid token characters are returned as is.
    """
    if not key or any(c in key for c in " \t\r\n:"):
        return key
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def _multi_items(values: HeaderInput) -> List[Tuple[str, str]]:
    if values is None:
        return []
    if isinstance(values, (httpx.Headers, httpx.QueryParams)):
        return list(values.multi_items())
    if isinstance(values, Mapping):
        items = []
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, (str, bytes)):
                value = [value]
            for v in value:
                items.append((key, v.decode() if isinstance(v, bytes) else str(v)))
        return items
    return [(k, v) for k, v in values]


def canonical_headers(values: HeaderInput = None) -> httpx.Headers:
    """Re-insert every header value under its canonical key."""
    return httpx.Headers([(canonical_header_key(k), v) for k, v in _multi_items(values)])


def query_params(values: HeaderInput = None) -> httpx.QueryParams:
    return httpx.QueryParams(_multi_items(values))


def header_dict(headers: httpx.Headers) -> dict:
    """Multi-valued mapping of canonical key -> values, in submission order."""
    out: dict = {}
    for raw_key, raw_value in headers.raw:
        key = canonical_header_key(raw_key.decode(headers.encoding))
        out.setdefault(key, []).append(raw_value.decode(headers.encoding))
    return out


def query_dict(queries: httpx.QueryParams) -> dict:
    out: dict = {}
    for key, value in queries.multi_items():
        out.setdefault(key, []).append(value)
    return out


class Field(BaseModel):
    """A workflow form field carried in the caller context."""

    name: str
    display: str
    kind: str
    value: Any


@dataclass(frozen=True)
class RequestOf(Generic[T]):
    """Request with a body of type T."""

    body: T = None
    method: str = ""
    url: str = "/"
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    queries: httpx.QueryParams = field(default_factory=httpx.QueryParams)
    context: Any = None
    access_token: str = ""
    trace_id: str = ""
    fn_id: str = ""
    fn_version: int = 0

    @property
    def path(self) -> str:
        return self.url

    def with_body(self, body: Any) -> "RequestOf[Any]":
        """Copy of the request carrying a different body (possibly of another type)."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["body"] = body
        return RequestOf(**values)

    def fields(self) -> List[Field]:
        """
        Fields set in the caller context under "fields".

        Entries missing a name, display, kind or value are dropped.
        """
        ctx = self.context
        if not isinstance(ctx, Mapping):
            return []
        raw = ctx.get("fields")
        if not isinstance(raw, list):
            return []

        out = []
        for entry in raw:
            if not isinstance(entry, Mapping):
                continue
            name, display, kind = entry.get("name"), entry.get("display"), entry.get("kind")
            value = entry.get("value")
            if not (name and display and kind) or value is None:
                continue
            if not all(isinstance(v, str) for v in (name, display, kind)):
                continue
            out.append(Field(name=name, display=display, kind=kind, value=value))
        return out


@dataclass(frozen=True)
class Request(RequestOf[Optional[BinaryIO]]):
    """
    Request handed to handlers by the runner.

    body is a readable byte stream, or a ComplexPayload for multi-part submissions.
    """

    body: Optional[BinaryIO] = field(default_factory=io.BytesIO)
