"""
Where: services/fdk/tests/test_models.py
What: Tests for the request/response models.
Why: Status resolution and header canonicalization are wire-visible.
"""

import io

import pytest

from services.fdk.models import (
    JSON,
    APIError,
    ComplexPayload,
    FileMeta,
    Request,
    RequestOf,
    Response,
    api_error,
    canonical_header_key,
    canonical_headers,
    err_resp,
    header_dict,
    query_dict,
    query_params,
)


class TestStatusCode:
    def test_explicit_code_wins(self):
        resp = Response(code=201, errors=[APIError(code=500, message="x")])
        assert resp.status_code == 201

    def test_highest_error_code(self):
        resp = Response(
            errors=[APIError(code=400, message="a"), APIError(code=503, message="b")]
        )
        assert resp.status_code == 503

    def test_error_order_does_not_matter(self):
        resp = Response(
            errors=[
                APIError(code=500, message="a"),
                APIError(code=501, message="b"),
                APIError(code=400, message="c"),
            ]
        )
        assert resp.status_code == 501

    def test_defaults_to_ok(self):
        assert Response().status_code == 200

    def test_err_resp_sets_code_eagerly(self):
        resp = err_resp(APIError(code=404, message="gone"), APIError(code=400, message="bad"))
        assert resp.code == 404
        assert [e.message for e in resp.errors] == ["gone", "bad"]

    def test_err_resp_without_errors_is_ok(self):
        assert err_resp().code == 200


def test_api_error_str():
    assert str(APIError(code=418, message="teapot")) == "[418] teapot"


def test_api_error_helper_appends_detail():
    err = api_error(400, "config is invalid", "missing name")
    assert err == APIError(code=400, message="config is invalid: missing name")


def test_json_marshals_lazily():
    value = {"a": [1, 2]}
    body = JSON(value)
    value["b"] = True

    assert body.marshal_json() == b'{"a":[1,2],"b":true}'
    assert body == JSON({"a": [1, 2], "b": True})


class TestHeaders:
    @pytest.mark.parametrize(
        "key, expected",
        [
            ("content-type", "Content-Type"),
            ("x-cs-traceid", "X-Cs-Traceid"),
            ("ACCEPT", "Accept"),
            ("bad key", "bad key"),
            ("", ""),
        ],
    )
    def test_canonical_header_key(self, key, expected):
        assert canonical_header_key(key) == expected

    def test_canonical_headers_merge_case_variants(self):
        headers = canonical_headers([("x-foo", "a"), ("X-FOO", "b")])

        assert headers.get_list("X-Foo") == ["a", "b"]
        assert header_dict(headers) == {"X-Foo": ["a", "b"]}

    def test_canonical_headers_from_multi_valued_mapping(self):
        headers = canonical_headers({"accept": ["text/plain", "application/json"]})

        assert headers.get_list("accept") == ["text/plain", "application/json"]
        assert header_dict(headers) == {"Accept": ["text/plain", "application/json"]}

    def test_query_params_keep_every_value(self):
        queries = query_params({"id": ["1", "2"], "q": "x"})

        assert queries.get_list("id") == ["1", "2"]
        assert query_dict(queries) == {"id": ["1", "2"], "q": ["x"]}


class TestRequest:
    def test_default_body_is_empty_stream(self):
        assert Request().body.read() == b""

    def test_with_body_keeps_everything_else(self):
        req = Request(
            body=io.BytesIO(b"{}"),
            method="PUT",
            url="/things",
            access_token="tok",
            trace_id="trace",
            fn_id="fn",
            fn_version=3,
        )

        typed = req.with_body({"name": "x"})

        assert isinstance(typed, RequestOf)
        assert typed.body == {"name": "x"}
        assert (typed.method, typed.path, typed.access_token) == ("PUT", "/things", "tok")
        assert (typed.trace_id, typed.fn_id, typed.fn_version) == ("trace", "fn", 3)

    def test_fields_from_context(self):
        req = Request(
            context={
                "fields": [
                    {"name": "host", "display": "Host", "kind": "string", "value": "h1"},
                    {"name": "", "display": "Empty", "kind": "string", "value": "x"},
                    {"name": "port", "display": "Port", "kind": "int"},
                    {"name": "count", "display": "Count", "kind": "int", "value": 0},
                    "garbage",
                ]
            }
        )

        fields = req.fields()

        assert [(f.name, f.value) for f in fields] == [("host", "h1"), ("count", 0)]

    @pytest.mark.parametrize("context", [None, "str", {"fields": "nope"}, {}])
    def test_fields_without_field_list(self, context):
        assert Request(context=context).fields() == []


def test_file_meta_size_is_string():
    meta = FileMeta(
        content_type="text/plain", encoding="", filename="a.txt", sha256_checksum="abc", size=11
    )
    assert meta.model_dump(mode="json")["size"] == "11"


class TestComplexPayload:
    def test_read_is_unsupported(self):
        with pytest.raises(io.UnsupportedOperation):
            ComplexPayload(body=b"x").read()

    def test_close_closes_every_file(self):
        a, b = io.BytesIO(b"a"), io.BytesIO(b"b")
        ComplexPayload(files={"a": a, "b": b}).close()

        assert a.closed and b.closed

    def test_close_reports_failures_together(self):
        class Broken:
            def close(self):
                raise OSError("disk gone")

        ok = io.BytesIO()
        with pytest.raises(ExceptionGroup) as exc_info:
            ComplexPayload(files={"bad": Broken(), "ok": ok}).close()

        assert ok.closed
        assert "disk gone" in str(exc_info.value.exceptions[0])
