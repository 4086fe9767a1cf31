import logging
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from qfuzz.console import LOGGER_NAME


def _phrase(status):
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def make_response(status=200, body=b"", headers=None, reason=None, url=""):
    """A fully-read requests.Response, as if the body had been downloaded."""
    r = requests.Response()
    r.status_code = status
    r.reason = reason if reason is not None else _phrase(status)
    r.headers = CaseInsensitiveDict(headers or {})
    r._content = body
    r._content_consumed = True
    r.url = url
    return r


class ScriptedSession(requests.Session):
    """Session whose send() answers from a route table instead of the network.

    A route value is a status int, a (status, body, headers) tuple, a list of
    those consumed in order, an exception instance to raise, or a callable
    taking the PreparedRequest.
    """

    def __init__(self, routes=None, default=404):
        super().__init__()
        self.routes = dict(routes or {})
        self.default = default
        self.sent = []
        self._lock = threading.Lock()

    def _answer(self, value, request):
        if callable(value) and not isinstance(value, type):
            value = value(request)
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, int):
            value = (value, b"", {})
        status, body, headers = value
        return make_response(status, body, headers, url=request.url)

    def send(self, request, **kwargs):
        with self._lock:
            self.sent.append((request, kwargs))
            value = self.routes.get(request.url, self.default)
            if isinstance(value, list):
                value = value.pop(0) if len(value) > 1 else value[0]
        return self._answer(value, request)


@pytest.fixture
def scripted_session():
    def factory(routes=None, default=404):
        return ScriptedSession(routes, default)
    return factory


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def _serve(self):
        self.server.clients.add(self.client_address)
        length = int(self.headers.get("Content-Length") or 0)
        body_in = self.rfile.read(length) if length else b""
        self.server.seen.append((self.command, self.path, dict(self.headers), body_in))

        status, body, headers = self.server.routes.get(self.path, (404, b"<html><title>Not Found</title></html>", {}))
        self.send_response(status)
        for k, v in headers.items():
            self.send_header(k, v)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    do_GET = do_POST = do_PUT = do_HEAD = _serve

    def log_message(self, *args):
        pass


@pytest.fixture
def http_server():
    """A local HTTP server; set ``server.routes[path] = (status, body, headers)``.

    Keeps connections alive; ``server.clients`` collects the client sockets seen.
    """
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.routes = {}
    server.seen = []
    server.clients = set()
    server.daemon_threads = True
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    server.base_url = f"http://127.0.0.1:{server.server_address[1]}"
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture(autouse=True)
def _reset_qfuzz_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
