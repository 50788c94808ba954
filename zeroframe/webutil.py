"""HTTP helpers: request decoding, JSON responses and a prefix-routed WSGI application."""

from __future__ import annotations

import json
import logging
import posixpath
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from wsgiref.simple_server import make_server

from zeroframe.query import Query, QueryError

logger = logging.getLogger(__name__)

OPTIONS_ALL = "all"

WSGIApp = Callable[[dict[str, Any], Callable[..., Any]], Iterable[bytes]]


def _clean(path: str) -> str:
    cleaned = posixpath.normpath(path) if path else "."
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _join(*parts: str) -> str:
    present = [part for part in parts if part]
    return _clean("/".join(present)) if present else ""


def make_uri(*args: str) -> str:
    """Join path elements, skipping blank ones; a trailing slash on the last is kept."""
    if not args:
        raise ValueError("make_uri needs at least one path element")
    uri = ""
    for arg in args:
        if arg.strip():
            uri = _join(uri, arg)
    return f"/{uri}/" if args[-1].endswith("/") else f"/{uri}"


def response_body(
    code: int,
    message: str,
    datas: list[Any] | None = None,
    expands: dict[str, Any] | None = None,
) -> bytes:
    """The JSON body of a standard response."""
    return json.dumps(
        {"code": code, "message": message, "datas": datas, "expands": expands},
        ensure_ascii=False,
        separators=(",", ":"),
    ).encode("utf-8")


def zero_request(body: bytes | str) -> dict[str, Any]:
    """Decode a request body, which must be a JSON object."""
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError(f"request must be a JSON object, got {type(data).__name__}")
    return data


def zero_query(request: dict[str, Any]) -> Query:
    """The first query carried by a decoded request."""
    querys = request.get("querys")
    if not querys:
        raise QueryError("missing necessary parameter `query[0]`")
    return Query.from_dict(querys[0])


def _options(request: dict[str, Any]) -> str | None:
    expands = request.get("expands") or {}
    value = expands.get("options")
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("`options` must be a string")
    return value


def query_options(request: dict[str, Any]) -> list[str]:
    """Lower-cased ``|``-separated options; just ``["all"]`` if ``all`` is among them."""
    options = _options(request)
    if options is None:
        return []
    result = []
    for item in options.split("|"):
        if item == OPTIONS_ALL:
            return [OPTIONS_ALL]
        result.append(item.lower())
    return result


def contains_option(request: dict[str, Any], option: str) -> bool:
    """Whether the options text mentions ``option`` or ``all``."""
    options = _options(request)
    if options is None:
        return False
    return option in options or OPTIONS_ALL in options


def uri_params(path: str, pattern: str) -> dict[str, str]:
    """Values of the ``:name`` segments of ``pattern`` found in ``path``."""
    colon = pattern.find(":")
    if colon < 0:
        raise ValueError(f"pattern {pattern!r} has no parameter")
    anchor = pattern[:colon]
    at = path.find(anchor)
    if at <= 0:
        return {}
    fields = pattern[pattern.find(anchor) + len(anchor):].split("/")
    values = path[at + len(anchor):].split("/")
    return {
        field[1:]: value for field, value in zip(fields, values) if field.startswith(":")
    }


@dataclass(frozen=True)
class HttpExecutor:
    """A WSGI handler bound to the path it serves."""

    handler: WSGIApp
    path: str

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        return self.handler(environ, start_response)


def handle(handler: WSGIApp, *args: str) -> HttpExecutor:
    """Bind ``handler`` to the path made from ``args``."""
    return HttpExecutor(handler=handler, path=make_uri(*args))


def _route(root: str, executor: HttpExecutor) -> str:
    joined = _join(root, executor.path)
    return f"{joined}/" if executor.path.endswith("/") else joined


def build_app(prefix: str, *args: HttpExecutor) -> WSGIApp:
    """A WSGI app serving each executor under ``prefix``.

    Paths ending in ``/`` serve their whole subtree, the longest match winning;
    other paths match exactly.
    """
    root = _join("/", prefix)
    exact: dict[str, HttpExecutor] = {}
    subtree: dict[str, HttpExecutor] = {}
    for executor in args:
        route = _route(root, executor)
        if route in exact or route in subtree:
            raise ValueError(f"multiple registrations for {route}")
        (subtree if route.endswith("/") else exact)[route] = executor
        logger.info("http server register path : %s", route)
    ordered = sorted(subtree, key=len, reverse=True)

    def app(environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        path = environ.get("PATH_INFO") or "/"
        target = exact.get(path) or subtree.get(path)
        if target is None and f"{path}/" in subtree:
            location = f"{path}/"
            query = environ.get("QUERY_STRING")
            if query:
                location = f"{location}?{query}"
            start_response(
                "301 Moved Permanently",
                [("Location", location), ("Content-Type", "text/html; charset=utf-8")],
            )
            return [b""]
        if target is None:
            target = next((subtree[route] for route in ordered if path.startswith(route)), None)
        if target is None:
            body = b"404 page not found\n"
            start_response(
                "404 Not Found",
                [("Content-Type", "text/plain; charset=utf-8"), ("Content-Length", str(len(body)))],
            )
            return [body]
        return target(environ, start_response)

    return app


def run_http_server(host: str, port: int, prefix: str, *args: HttpExecutor) -> None:
    """Serve the executors under ``prefix`` on ``host:port`` until interrupted."""
    app = build_app(prefix, *args)
    with make_server(host, port, app) as server:
        logger.info("http server start on : http://%s:%d%s", host, port, _join("/", prefix))
        server.serve_forever()