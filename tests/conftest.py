"""
Pytest configuration for fetchkit tests.

This file contains shared fixtures and configuration
for all tests in the project, including a small HTTP/1.1 server
running on a background thread.
"""

import gzip
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import List

import pytest

from fetchkit.config import FetchConfig

GZIP_BODY = b"compressed hello " * 20
BODY_CHUNKS = [b"ab", b"cd"]


class FixtureHandler(BaseHTTPRequestHandler):
    """Routes used by the tests."""

    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):
        pass

    def _send(self, status: int, body: bytes = b"", headers: List = ()) -> None:
        self.send_response(status)
        for name, value in headers:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD" and body:
            self.wfile.write(body)

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        return self.rfile.read(length) if length else b""

    def _route(self) -> None:
        path = self.path
        # Drain the request body before any reply
        body = self._read_body()

        if path == "/ok":
            self._send(200, b"hello", [("Content-Type", "text/plain")])
        elif path == "/missing":
            self._send(404, b"missing", [("Content-Type", "text/plain")])
        elif path == "/chunks":
            self.send_response(200)
            self.send_header("Transfer-Encoding", "chunked")
            self.end_headers()
            if self.command != "HEAD":
                for chunk in BODY_CHUNKS:
                    self.wfile.write(b"%x\r\n%s\r\n" % (len(chunk), chunk))
                    self.wfile.flush()
                self.wfile.write(b"0\r\n\r\n")
        elif path == "/cookies":
            self._send(200, b"", [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2"), ("X-Zeta", "z")])
        elif path == "/gzip":
            self._send(200, gzip.compress(GZIP_BODY), [("Content-Encoding", "gzip")])
        elif path == "/empty-gzip":
            self._send(200, b"", [("Content-Encoding", "gzip")])
        elif path == "/redirect":
            self._send(302, b"", [("Location", "/ok")])
        elif path == "/see-other":
            self._send(303, b"", [("Location", "/echo")])
        elif path == "/loop":
            self._send(302, b"", [("Location", "/loop")])
        elif path == "/elsewhere":
            # Same server, other origin
            port = self.server.server_address[1]
            self._send(302, b"", [("Location", f"http://localhost:{port}/echo")])
        elif path == "/echo":
            self._send(
                200,
                body,
                [
                    ("X-Method", self.command),
                    ("X-Content-Type", self.headers.get("Content-Type") or ""),
                    ("X-User-Agent", self.headers.get("User-Agent") or ""),
                    ("X-Authorization", self.headers.get("Authorization") or ""),
                    ("X-Host", self.headers.get("Host") or ""),
                ],
            )
        elif path == "/bad-header":
            # send_header encodes as latin-1, so this is not valid ASCII on the wire
            self._send(200, b"body", [("X-Bad", "caf\xe9")])
        elif path == "/truncated":
            self.send_response(200)
            self.send_header("Content-Length", "100")
            self.end_headers()
            self.wfile.write(b"only a part")
            self.close_connection = True
        else:
            self._send(500, b"no such route")

    do_GET = _route
    do_HEAD = _route
    do_POST = _route
    do_PUT = _route
    do_DELETE = _route


@pytest.fixture(scope="session")
def http_server():
    """Start the fixture server and return its base URL."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), FixtureHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()


@pytest.fixture
def config():
    """A short-timeout configuration for tests."""
    return FetchConfig(timeout=5.0, backend="native")


@pytest.fixture
def unresolvable_url():
    """A URL whose host can never resolve."""
    return "http://fetchkit-test.invalid/ok"
