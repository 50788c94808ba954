import json
from wsgiref.util import setup_testing_defaults

import pytest

from zeroframe.query import QueryError
from zeroframe.webutil import (
    HttpExecutor,
    build_app,
    contains_option,
    handle,
    make_uri,
    query_options,
    response_body,
    uri_params,
    zero_query,
    zero_request,
)


def _text(label):
    def app(environ, start_response):
        start_response("200 OK", [("Content-Type", "text/plain")])
        return [label.encode()]

    return app


def _call(app, path, query=""):
    environ = {}
    setup_testing_defaults(environ)
    environ["PATH_INFO"] = path
    environ["QUERY_STRING"] = query
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    return captured["status"], captured["headers"], body


def test_make_uri_joins_elements():
    assert make_uri("api", "user") == "/api/user"


def test_make_uri_keeps_trailing_slash():
    assert make_uri("api", "files/") == "/api/files/"


def test_make_uri_skips_blank_elements():
    assert make_uri("api", "  ", "user") == make_uri("api", "user")


def test_make_uri_needs_elements():
    with pytest.raises(ValueError):
        make_uri()


def test_response_body_round_trip():
    body = response_body(200, "ok", [{"id": "a"}], {"total": "1"})
    assert json.loads(body) == {
        "code": 200,
        "message": "ok",
        "datas": [{"id": "a"}],
        "expands": {"total": "1"},
    }


def test_response_body_without_data():
    decoded = json.loads(response_body(404, "missing"))
    assert decoded["datas"] is None
    assert decoded["expands"] is None


def test_zero_request_decodes_object():
    assert zero_request(b'{"querys": []}') == {"querys": []}


def test_zero_request_rejects_array():
    with pytest.raises(ValueError):
        zero_request("[1, 2]")


def test_zero_request_rejects_bad_json():
    with pytest.raises(ValueError):
        zero_request("{not json")


def test_zero_query_reads_first_query():
    query = zero_query({"querys": [{"columns": ["userName"]}, {"columns": ["other"]}]})
    assert query.columns == ["userName"]


@pytest.mark.parametrize("request_data", [{}, {"querys": []}, {"querys": None}])
def test_zero_query_missing(request_data):
    with pytest.raises(QueryError):
        zero_query(request_data)


def test_query_options_lowercases():
    assert query_options({"expands": {"options": "Users|ROLES"}}) == ["users", "roles"]


def test_query_options_all_wins():
    assert query_options({"expands": {"options": "users|all|roles"}}) == ["all"]


def test_query_options_absent():
    assert query_options({}) == []
    assert query_options({"expands": {}}) == []


def test_contains_option():
    request = {"expands": {"options": "users|roles"}}
    assert contains_option(request, "roles") is True
    assert contains_option(request, "groups") is False
    assert contains_option({"expands": {"options": "all"}}, "groups") is True
    assert contains_option({}, "roles") is False


def test_uri_params_extracts_values():
    assert uri_params("/api/user/42/profile", "/user/:id/profile") == {"id": "42"}


def test_uri_params_multiple():
    params = uri_params("/api/user/7/item/9", "/user/:uid/item/:iid")
    assert params == {"uid": "7", "iid": "9"}


def test_uri_params_anchor_at_start_gives_nothing():
    assert uri_params("/user/42", "/user/:id") == {}


def test_uri_params_needs_parameter():
    with pytest.raises(ValueError):
        uri_params("/api/user", "/user")


def test_handle_builds_executor():
    handler = _text("x")
    executor = handle(handler, "api", "user")
    assert executor == HttpExecutor(handler=handler, path="/api/user")


def test_app_exact_route():
    app = build_app("v1", handle(_text("user"), "user"))
    status, _, body = _call(app, "/v1/user")
    assert status.startswith("200")
    assert body == b"user"
    status, _, _ = _call(app, "/v1/user/extra")
    assert status.startswith("404")


def test_app_subtree_longest_match():
    app = build_app(
        "v1",
        handle(_text("root"), "/"),
        handle(_text("files"), "files/"),
    )
    assert _call(app, "/v1/files/a/b")[2] == b"files"
    assert _call(app, "/v1/other")[2] == b"root"


def test_app_redirects_to_subtree():
    app = build_app("v1", handle(_text("files"), "files/"))
    status, headers, _ = _call(app, "/v1/files", "page=2")
    assert status.startswith("301")
    assert headers["Location"] == "/v1/files/?page=2"


def test_app_unknown_path():
    app = build_app("v1", handle(_text("user"), "user"))
    status, _, body = _call(app, "/nowhere")
    assert status.startswith("404")
    assert body == b"404 page not found\n"


def test_app_rejects_duplicate_routes():
    with pytest.raises(ValueError):
        build_app("v1", handle(_text("a"), "user"), handle(_text("b"), "user"))