"""
Handler contract and composing adapters.

A Handler is anything with ``async handle(ctx, request) -> Response``. The
adapters wrap plain functions into Handlers and short-circuit with a 400 when
the body or the workflow context cannot be decoded.
"""

import asyncio
import inspect
from http import HTTPStatus
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Type, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from ..models.context import HandlerContext
from ..models.request import Request, RequestOf
from ..models.response import APIError, Response, err_resp
from ..models.workflow import WorkflowCtx

T = TypeVar("T")

MaybeAwaitable = Union[Response, Awaitable[Response]]


class Handler(Protocol):
    async def handle(self, ctx: HandlerContext, request: Request) -> Response: ...


class Validatable(Protocol):
    def ok(self) -> Optional[List[APIError]]: ...


V = TypeVar("V", bound=Validatable)


async def _resolve(result: MaybeAwaitable) -> Response:
    if inspect.isawaitable(result):
        result = await result
    return result


def _is_async(fn: Callable) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


async def _call(fn: Callable[..., MaybeAwaitable], *args: Any) -> Response:
    """
    Call fn with args; a sync fn runs in a worker thread so it never blocks
    the event loop serving other requests.
    """
    if _is_async(fn):
        return await fn(*args)
    return await _resolve(await asyncio.to_thread(fn, *args))


class HandlerFn:
    """
    Wraps a plain (sync or async) function into a Handler.

    Sync functions run in a worker thread.
    """

    def __init__(self, fn: Callable[[HandlerContext, Request], MaybeAwaitable]):
        self.fn = fn

    async def handle(self, ctx: HandlerContext, request: Request) -> Response:
        return await _call(self.fn, ctx, request)

    def __repr__(self) -> str:
        return f"HandlerFn({getattr(self.fn, '__qualname__', self.fn)!r})"


def as_handler(h: Any) -> Handler:
    """Accept a Handler as is; wrap a bare callable in HandlerFn."""
    if h is None:
        raise TypeError("handler must not be None")
    if hasattr(h, "handle"):
        return h
    if callable(h):
        return HandlerFn(h)
    raise TypeError(f"not a handler: {h!r}")


def _bad_request(message: str, err: Exception) -> Response:
    error = APIError(code=int(HTTPStatus.BAD_REQUEST), message=f"{message}: {err}")
    return Response(errors=[error])


def _read_body(request: RequestOf[Any]) -> bytes:
    body = request.body
    if body is None:
        return b""
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    return body.read()


def handle_fn_of(
    body_type: Type[T], fn: Callable[[HandlerContext, RequestOf[T]], MaybeAwaitable]
) -> Handler:
    """
    Handler that decodes the JSON body into body_type before calling fn.

    fn receives a RequestOf[body_type]; it is never called for an undecodable body.
    """
    adapter = TypeAdapter(body_type)

    async def handle(ctx: HandlerContext, request: Request) -> Response:
        try:
            value = adapter.validate_json(_read_body(request))
        except (ValidationError, ValueError, OSError) as e:
            return _bad_request("failed to unmarshal payload", e)
        return await _call(fn, ctx, request.with_body(value))

    return HandlerFn(handle)


def handler_fn_of_ok(
    body_type: Type[V], fn: Callable[[HandlerContext, RequestOf[V]], MaybeAwaitable]
) -> Handler:
    """
    As handle_fn_of, then runs the decoded body's ok() method.

    Errors returned by ok() are the response, untouched; fn is not called.
    """

    async def validated(ctx: HandlerContext, request: RequestOf[V]) -> Response:
        errs = request.body.ok()
        if errs:
            return err_resp(*errs)
        return await _call(fn, ctx, request)

    return handle_fn_of(body_type, validated)


def decode_workflow(request: RequestOf[Any]) -> WorkflowCtx:
    """
    Raises:
        ValidationError: the caller context is missing or not a workflow context.
    """
    return WorkflowCtx.model_validate(request.context)


def handle_workflow(
    fn: Callable[[HandlerContext, Request, WorkflowCtx], MaybeAwaitable],
) -> Handler:
    """
    Handler with workflow integration and no opinion on the body.

    Typically used for DELETE and GET handlers.
    """

    async def handle(ctx: HandlerContext, request: Request) -> Response:
        try:
            workflow_ctx = decode_workflow(request)
        except ValidationError as e:
            return _bad_request("failed to unmarshal workflow context", e)
        return await _call(fn, ctx, request, workflow_ctx)

    return HandlerFn(handle)


def handle_workflow_of(
    body_type: Type[T],
    fn: Callable[[HandlerContext, RequestOf[T], WorkflowCtx], MaybeAwaitable],
) -> Handler:
    """
    Handler with workflow integration and a typed body.

    Typically used for PATCH, POST and PUT handlers.
    """

    async def with_workflow(ctx: HandlerContext, request: Request, workflow_ctx: WorkflowCtx):
        async def typed(ctx: HandlerContext, r: RequestOf[T]) -> Response:
            return await _call(fn, ctx, r, workflow_ctx)

        return await handle_fn_of(body_type, typed).handle(ctx, request)

    return handle_workflow(with_workflow)


def err_handler(*errs: APIError) -> Handler:
    """Handler that responds with only the given errors."""

    async def handle(ctx: HandlerContext, request: Request) -> Response:
        return err_resp(*errs)

    return HandlerFn(handle)
