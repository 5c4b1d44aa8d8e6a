"""
Where: services/fdk/tests/test_runner_http.py
What: Tests for the HTTP transport loop.
Why: Every request, even a broken one, must be answered with an envelope.
"""

import asyncio
import base64
import gzip
import hashlib
import io
import json
import logging
import threading

import httpx
import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel

from services.common.core.request_context import get_trace_id
from services.fdk.config import FdkConfig
from services.fdk.core.compression import compress_gzip
from services.fdk.core.handlers import HandlerFn, handle_fn_of
from services.fdk.core.mux import Mux
from services.fdk.models import JSON, APIError, ComplexPayload, File, Response
from services.fdk.services.runner_http import HTTPRunner, create_app

LOGGER_NAME = "test.fdk.runner"
CONCURRENT_REQUESTS = 4


class Thing(BaseModel):
    name: str


def _client(handler) -> TestClient:
    return TestClient(create_app(handler, logging.getLogger(LOGGER_NAME)))


def _fn(fn) -> HandlerFn:
    return HandlerFn(fn)


def _envelope(**fields) -> dict:
    envelope = {"method": "POST", "url": "/"}
    envelope.update(fields)
    return envelope


@pytest.fixture
def mux() -> Mux:
    m = Mux()
    m.post(
        "/things",
        handle_fn_of(Thing, lambda ctx, r: Response(code=201, body=JSON({"name": r.body.name}))),
    )
    m.get("/things", lambda ctx, r: Response(body=JSON([])))
    return m


class TestDispatch:
    def test_envelope_round_trip_through_mux(self, mux):
        resp = _client(mux).post(
            "/", json=_envelope(body={"name": "x"}, method="POST", url="/things")
        )

        assert resp.status_code == 201
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {"body": {"name": "x"}, "code": 201, "errors": []}

    def test_any_method_and_path_is_accepted(self, mux):
        client = _client(mux)
        payload = _envelope(method="GET", url="/things")

        for method in ("POST", "PUT", "PATCH", "DELETE"):
            resp = client.request(method, "/some/where", content=json.dumps(payload))
            assert resp.json() == {"body": [], "code": 200, "errors": []}

    def test_route_not_found(self, mux):
        resp = _client(mux).post("/", json=_envelope(url="/missing"))

        assert resp.status_code == 404
        assert resp.json()["errors"] == [{"code": 404, "message": "route not found"}]

    def test_method_not_allowed(self, mux):
        resp = _client(mux).post("/", json=_envelope(method="DELETE", url="/things"))

        assert resp.status_code == 405
        assert resp.json()["code"] == 405

    def test_response_headers_in_envelope(self):
        handler = _fn(lambda ctx, r: Response(headers={"X-Thing": ["a", "b"]}))

        resp = _client(handler).post("/", json=_envelope())

        assert resp.json()["headers"] == {"X-Thing": ["a", "b"]}

    def test_request_id_header(self):
        resp = _client(_fn(lambda ctx, r: Response())).post("/", json=_envelope())

        assert resp.headers["X-Request-Id"]

    def test_trace_id_reaches_handler_and_logs(self):
        seen = {}

        def handler(ctx, request):
            seen["ctx"] = ctx.trace_id
            seen["context_var"] = get_trace_id()
            return Response()

        _client(_fn(handler)).post("/", json=_envelope(trace_id="trace-123"))

        assert seen == {"ctx": "trace-123", "context_var": "trace-123"}

    def test_request_body_closed_after_dispatch(self):
        seen = {}

        def handler(ctx, request):
            seen["body"] = request.body
            return Response()

        _client(_fn(handler)).post("/", json=_envelope(body={"a": 1}))

        assert seen["body"].closed


class TestFailures:
    def test_handler_exception_is_500(self, caplog):
        def boom(ctx, request):
            raise RuntimeError("kaboom")

        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            resp = _client(_fn(boom)).post("/", json=_envelope())

        assert resp.status_code == 500
        assert resp.json()["errors"] == [{"code": 500, "message": "encountered unexpected error"}]
        record = next(r for r in caplog.records if r.name == LOGGER_NAME)
        assert record.exc_info is not None

    def test_non_response_return_is_500(self):
        resp = _client(_fn(lambda ctx, r: {"not": "a response"})).post("/", json=_envelope())

        assert resp.status_code == 500

    def test_malformed_envelope(self):
        resp = _client(_fn(lambda ctx, r: Response())).post("/", content=b"{nope")

        assert resp.status_code == 500
        assert resp.json()["errors"] == [
            {"code": 500, "message": "unable to process incoming request"}
        ]

    def test_oversized_envelope(self, monkeypatch):
        monkeypatch.setattr("services.fdk.core.codec.MAX_ENVELOPE_BYTES", 16)
        called = False

        def handler(ctx, request):
            nonlocal called
            called = True
            return Response()

        resp = _client(_fn(handler)).post("/", json=_envelope(body={"padding": "x" * 64}))

        assert resp.status_code == 500
        assert not called

    def test_invalid_http_status_is_written_as_500(self):
        resp = _client(_fn(lambda ctx, r: Response(code=1000))).post("/", json=_envelope())

        assert resp.status_code == 500
        assert resp.json()["code"] == 1000

    def test_body_marshal_failure_still_answers_with_envelope(self):
        class Exploding:
            def marshal_json(self):
                raise RuntimeError("boom")

        resp = _client(_fn(lambda ctx, r: Response(body=Exploding()))).post("/", json=_envelope())

        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {
            "code": 500,
            "errors": [{"code": 500, "message": "failed to marshal response body: boom"}],
        }

    def test_response_write_failure_answers_with_envelope(self, caplog):
        handler = _fn(lambda ctx, r: Response(headers={"X-Count": 5}))

        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            resp = _client(handler).post("/", json=_envelope())

        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {
            "code": 500,
            "errors": [{"code": 500, "message": "encountered unexpected error"}],
        }
        assert any(r.getMessage() == "failed to write response" for r in caplog.records)

    def test_file_post_processing_failure_answers_with_envelope(self, monkeypatch):
        def broken(*args):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr("services.fdk.services.runner_http.write_file", broken)
        handler = _fn(lambda ctx, r: Response(body=File(filename="out.txt", contents=io.BytesIO(b"x"))))

        resp = _client(handler).post("/", json=_envelope())

        assert resp.status_code == 500
        assert resp.json()["errors"] == [{"code": 500, "message": "encountered unexpected error"}]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_blocking_sync_handlers_do_not_serialize_requests(self):
        # Every handler blocks until all of them are running at once.
        barrier = threading.Barrier(CONCURRENT_REQUESTS, timeout=5)

        def blocking(ctx, request):
            barrier.wait()
            return Response(body=JSON({"ok": True}))

        app = create_app(_fn(blocking), logging.getLogger(LOGGER_NAME))
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://fdk.test") as client:
            responses = await asyncio.gather(
                *(client.post("/", json=_envelope()) for _ in range(CONCURRENT_REQUESTS))
            )

        assert [r.status_code for r in responses] == [200] * CONCURRENT_REQUESTS
        assert not barrier.broken


class TestMultipart:
    def test_file_body(self, mux):
        meta = json.dumps({"method": "POST", "url": "/things"})

        resp = _client(mux).post(
            "/",
            data={"meta": meta},
            files={"body": ("body.json", b'{"name": "upload"}', "application/json")},
        )

        assert resp.json() == {"body": {"name": "upload"}, "code": 201, "errors": []}

    def test_complex_payload(self):
        seen = {}

        def handler(ctx, request):
            assert isinstance(request.body, ComplexPayload)
            seen["body"] = request.body.body
            seen["files"] = {k: v.read() for k, v in request.body.files.items()}
            return Response()

        resp = _client(_fn(handler)).post(
            "/",
            data={"meta": "{}", "body": '{"k": 1}'},
            files=[
                ("file1", ("a.txt", b"aaa", "text/plain")),
                ("file2", ("b.txt", b"bbb", "text/plain")),
            ],
        )

        assert resp.status_code == 200
        assert seen == {"body": b'{"k": 1}', "files": {"a.txt": b"aaa", "b.txt": b"bbb"}}

    def test_missing_meta(self):
        resp = _client(_fn(lambda ctx, r: Response())).post(
            "/", files={"body": ("body.json", b"{}", "application/json")}
        )

        assert resp.status_code == 500
        assert resp.json()["errors"][0]["message"] == "unable to process incoming request"


class TestFileBodies:
    def test_file_is_written_and_replaced_by_metadata(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        handler = _fn(
            lambda ctx, r: Response(body=File(filename="out.txt", contents=io.BytesIO(b"hello world")))
        )

        resp = _client(handler).post("/", json=_envelope())

        checksum = base64.b64encode(hashlib.sha256(b"hello world").digest()).decode()
        assert resp.status_code == 200
        assert resp.json()["body"] == {
            "content_type": "text/plain",
            "encoding": "",
            "filename": "out.txt",
            "sha256_checksum": checksum,
            "size": "11",
        }
        assert (tmp_path / "out.txt").read_bytes() == b"hello world"

    def test_compressed_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        data = b"row\n" * 1000

        def handler(ctx, request):
            return Response(
                body=compress_gzip(File(filename="rows.txt.gz", contents=io.BytesIO(data)))
            )

        body = _client(_fn(handler)).post("/", json=_envelope()).json()["body"]

        assert body["encoding"] == "gzip"
        assert gzip.decompress((tmp_path / "rows.txt.gz").read_bytes()) == data
        assert int(body["size"]) == (tmp_path / "rows.txt.gz").stat().st_size

    def test_synthesized_filename(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        handler = _fn(
            lambda ctx, r: Response(
                body=File(content_type="application/json", contents=io.BytesIO(b"{}"))
            )
        )

        body = _client(handler).post("/", json=_envelope()).json()["body"]

        assert body["filename"].startswith("upload_")
        assert body["filename"].endswith(".json")
        assert (tmp_path / body["filename"]).exists()

    def test_write_failure_appends_error(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        handler = _fn(
            lambda ctx, r: Response(
                body=File(filename="missing/out.txt", contents=io.BytesIO(b"x")),
                errors=[APIError(code=400, message="earlier")],
            )
        )

        resp = _client(handler).post("/", json=_envelope())

        out = resp.json()
        assert resp.status_code == 500
        assert out["errors"][0] == {"code": 400, "message": "earlier"}
        assert out["errors"][1]["message"].startswith("failed to open file")
        assert out["body"]["filename"] == "missing/out.txt"


class _FakeServer:
    def __init__(self, fail: bool = False):
        self.should_exit = False
        self.started = asyncio.Event()
        self.fail = fail

    async def serve(self):
        self.started.set()
        if self.fail:
            raise RuntimeError("bind failed")
        while not self.should_exit:
            await asyncio.sleep(0.01)


class TestHTTPRunner:
    def test_server_config_from_settings(self):
        settings = FdkConfig(_env_file=None, PORT=9001, SHUTDOWN_TIMEOUT=3, MAX_HEADER_BYTES=2048)
        runner = HTTPRunner(settings)

        server = runner.build_server(create_app(_fn(lambda ctx, r: Response())))

        assert server.config.port == 9001
        assert server.config.host == "0.0.0.0"
        assert server.config.timeout_graceful_shutdown == 3
        assert server.config.h11_max_incomplete_event_size == 2048

    @pytest.mark.asyncio
    async def test_stop_event_shuts_server_down(self, monkeypatch):
        fake = _FakeServer()
        runner = HTTPRunner(FdkConfig(_env_file=None))
        monkeypatch.setattr(runner, "build_server", lambda app: fake)
        stop = asyncio.Event()

        task = asyncio.create_task(
            runner(stop, logging.getLogger(LOGGER_NAME), _fn(lambda ctx, r: Response()))
        )
        await fake.started.wait()
        stop.set()
        await asyncio.wait_for(task, timeout=2)

        assert fake.should_exit

    @pytest.mark.asyncio
    async def test_server_failure_propagates(self, monkeypatch):
        runner = HTTPRunner(FdkConfig(_env_file=None))
        monkeypatch.setattr(runner, "build_server", lambda app: _FakeServer(fail=True))

        with pytest.raises(RuntimeError, match="bind failed"):
            await runner(asyncio.Event(), logging.getLogger(LOGGER_NAME), _fn(lambda ctx, r: Response()))
