"""
Where: services/fdk/services/runner_http.py
What: HTTP transport loop of a function process.
Why: Bridge the platform's envelope protocol to the handler contract.

Every request (any method, any path) is decoded into a Request, dispatched to
the root handler, and answered with a response envelope. Handler failures
never escape as transport errors; the caller always gets an envelope.
"""

import asyncio
import dataclasses
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi import Request as HTTPRequest
from fastapi.responses import Response as HTTPResponse
from services.common.core.request_context import set_trace_id

from ..config import FdkConfig, config
from ..core.codec import build_envelope, decode_request, dump_envelope
from ..core.exceptions import EnvelopeDecodeError, FileMaterializeError
from ..core.files import normalize_file, write_file
from ..core.handlers import Handler
from ..middleware import access_log_middleware
from ..models.context import HandlerContext
from ..models.file import File, FileMeta
from ..models.request import Request
from ..models.response import APIError, Response, err_resp

ALL_METHODS = ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"]

UNABLE_TO_PROCESS = "unable to process incoming request"
UNEXPECTED_ERROR = "encountered unexpected error"


def create_app(
    handler: Handler,
    logger: Optional[logging.Logger] = None,
    shutdown: Optional[asyncio.Event] = None,
) -> FastAPI:
    """Build the ASGI app that feeds every inbound request to handler."""
    logger = logger or logging.getLogger("fdk.runner")
    shutdown = shutdown or asyncio.Event()

    app = FastAPI(title="Function Runner", docs_url=None, redoc_url=None, openapi_url=None)
    app.middleware("http")(access_log_middleware)
    app.state.handler = handler
    app.state.shutdown = shutdown

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def dispatch(http_request: HTTPRequest) -> HTTPResponse:
        return await dispatch_request(http_request, handler, logger, shutdown)

    return app


# ===========================================
# Dispatch
# ===========================================


async def dispatch_request(
    http_request: HTTPRequest,
    handler: Handler,
    logger: logging.Logger,
    shutdown: asyncio.Event,
) -> HTTPResponse:
    try:
        request = await decode_request(http_request)
    except EnvelopeDecodeError as e:
        logger.error("failed to create request", extra={"error_detail": str(e)})
        await http_request.close()
        return write_response(
            err_resp(APIError(code=500, message=UNABLE_TO_PROCESS)), logger
        )

    try:
        set_trace_id(request.trace_id)
        ctx = HandlerContext(trace_id=request.trace_id, logger=logger, shutdown=shutdown)

        resp = await invoke_handler(handler, ctx, request, logger)
        try:
            if isinstance(resp.body, File):
                resp = await materialize_file(resp, logger)
            return write_response(resp, logger)
        except Exception:
            logger.error(
                "failed to write response",
                exc_info=True,
                extra={"method": request.method, "path": request.url},
            )
            return write_response(err_resp(APIError(code=500, message=UNEXPECTED_ERROR)), logger)
    finally:
        close_body(request, logger)
        await http_request.close()


async def invoke_handler(
    handler: Handler, ctx: HandlerContext, request: Request, logger: logging.Logger
) -> Response:
    """Run the handler; any exception it raises becomes a 500 response."""
    try:
        resp = await handler.handle(ctx, request)
    except Exception:
        logger.error(
            "panic caught in handler",
            exc_info=True,
            extra={"method": request.method, "path": request.url},
        )
        return Response(errors=[APIError(code=500, message=UNEXPECTED_ERROR)])

    if not isinstance(resp, Response):
        logger.error(
            f"handler returned {type(resp).__name__}, expected Response",
            extra={"method": request.method, "path": request.url},
        )
        return Response(errors=[APIError(code=500, message=UNEXPECTED_ERROR)])
    return resp


async def materialize_file(resp: Response, logger: logging.Logger) -> Response:
    """
    Write a File body to disk and replace it with its metadata.

    On failure the normalized File stays the body and a 500 error is appended.
    """
    f = normalize_file(resp.body)
    try:
        checksum, size = await asyncio.to_thread(write_file, f.contents, f.filename)
    except FileMaterializeError as e:
        logger.error("failed to write file", extra={"file_name": f.filename, "error_detail": str(e)})
        errors = [*resp.errors, APIError(code=500, message=str(e))]
        return dataclasses.replace(resp, body=f, errors=errors)

    meta = FileMeta(
        content_type=f.content_type,
        encoding=f.encoding,
        filename=f.filename,
        sha256_checksum=checksum,
        size=size,
    )
    return dataclasses.replace(resp, body=meta)


def write_response(resp: Response, logger: logging.Logger) -> HTTPResponse:
    envelope = build_envelope(resp)
    code = envelope["code"]
    status = code if 100 <= code <= 599 else 500
    if status != code:
        logger.warning(f"response code {code} is not a valid HTTP status, writing {status}")
    return HTTPResponse(
        content=dump_envelope(envelope), status_code=status, media_type="application/json"
    )


def close_body(request: Request, logger: logging.Logger) -> None:
    body = request.body
    if body is None or not hasattr(body, "close"):
        return
    try:
        body.close()
    except Exception as e:
        logger.error("failed to close request body", extra={"error_detail": str(e)})


# ===========================================
# Serving
# ===========================================


class HTTPRunner:
    """
    Serves a handler over HTTP until the stop event is set.

    Shutdown stops accepting connections and gives in-flight requests
    SHUTDOWN_TIMEOUT seconds to finish.
    """

    def __init__(self, settings: Optional[FdkConfig] = None):
        self.settings = settings or config

    def build_server(self, app: FastAPI) -> uvicorn.Server:
        server_config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.settings.PORT,
            log_config=None,
            access_log=False,
            timeout_graceful_shutdown=self.settings.SHUTDOWN_TIMEOUT,
            h11_max_incomplete_event_size=self.settings.MAX_HEADER_BYTES,
        )
        return uvicorn.Server(server_config)

    async def __call__(
        self, stop: asyncio.Event, logger: logging.Logger, handler: Handler
    ) -> None:
        shutdown = asyncio.Event()
        server = self.build_server(create_app(handler, logger, shutdown))

        serve_task = asyncio.create_task(server.serve())
        stop_task = asyncio.create_task(stop.wait())

        logger.info(f"serving HTTP server on port {self.settings.PORT}")
        done, _ = await asyncio.wait(
            {serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )

        shutdown.set()
        if stop_task in done:
            logger.info("shutting down HTTP server...")
            server.should_exit = True
        else:
            stop_task.cancel()

        try:
            await serve_task
        except Exception:
            logger.error("unexpected shutdown of server", exc_info=True)
            raise
        logger.info("HTTP server stopped")


async def run_http(
    stop: asyncio.Event,
    logger: logging.Logger,
    handler: Handler,
    settings: Optional[FdkConfig] = None,
) -> None:
    await HTTPRunner(settings)(stop, logger, handler)
