"""
Shared fixtures: a local HTTP server for probe tests and fakes for the loop.
"""

from __future__ import annotations

import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from prober.models import Sample


class _Handler(BaseHTTPRequestHandler):
    slow_seconds = 3.0
    trickle_seconds = 0.4

    def log_message(self, format, *args):  # keep test output quiet
        pass

    def _send(self, status: int, body: bytes = b"hello", headers: dict | None = None) -> None:
        self.send_response(status)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        self.server.requests.append({"path": self.path, "headers": dict(self.headers)})

        if self.path == "/ok":
            self._send(200, b"<html>ok</html>", {"x-nextjs-cache": "HIT"})
        elif self.path == "/stale":
            self._send(200, b"stale", {"X-Nextjs-Cache": "STALE"})
        elif self.path == "/nocache":
            self._send(200)
        elif self.path == "/custom-header":
            self._send(200, headers={"X-Cache": "MISS"})
        elif self.path == "/error":
            self._send(500, b"boom", {"x-nextjs-cache": "MISS"})
        elif self.path == "/not-found":
            self._send(404, b"missing")
        elif self.path == "/redirect":
            self._send(302, b"", {"Location": "/ok"})
        elif self.path == "/big":
            self._send(200, b"x" * (512 * 1024))
        elif self.path == "/slow":
            time.sleep(self.slow_seconds)
            try:
                self._send(200)
            except (BrokenPipeError, ConnectionResetError):
                pass
        elif self.path == "/trickle-headers":
            self._trickle(b"HTTP/1.0 200 OK\r\n", [f"X-Pad-{i}: {i}\r\n".encode() for i in range(10)] + [b"\r\n"])
        elif self.path == "/trickle-body":
            head = b"HTTP/1.0 200 OK\r\nContent-Length: 8\r\n\r\n"
            self._trickle(head, [b"x"] * 8)
        else:
            self._send(404, b"")

    def _trickle(self, head: bytes, pieces: list[bytes]) -> None:
        """Write `head` at once, then one piece every `trickle_seconds`"""
        try:
            self.wfile.write(head)
            for chunk in pieces:
                time.sleep(self.trickle_seconds)
                self.wfile.write(chunk)
        except OSError:
            pass  # the client hung up at its deadline


class _Server(ThreadingHTTPServer):
    daemon_threads = True
    block_on_close = False


@pytest.fixture
def http_server():
    """Base URL of a throwaway HTTP server on 127.0.0.1; `.requests` lists what it received"""
    server = _Server(("127.0.0.1", 0), _Handler)
    server.requests = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address
    try:
        yield type("ServerInfo", (), {"url": f"http://{host}:{port}", "requests": server.requests})
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def closed_port_url() -> str:
    """URL of a local port nothing listens on"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/"


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProbe:
    """Returns canned samples; advances the fake clock by `cost` seconds per probe"""

    def __init__(self, clock: FakeClock, cost: float = 0.0, ttfbs: list[float | None] | None = None):
        self.clock = clock
        self.cost = cost
        self.ttfbs = ttfbs
        self.calls: list[tuple[str, float]] = []

    def measure(self, url: str) -> Sample:
        self.calls.append((url, self.clock.now))
        n = len(self.calls)
        self.clock.now += self.cost
        ttfb = 100.0 + n if self.ttfbs is None else self.ttfbs[(n - 1) % len(self.ttfbs)]
        timestamp = f"2026-01-01T00:00:{n % 60:02d}.000Z"
        if ttfb is None:
            return Sample.failure(timestamp, "connect ECONNREFUSED")
        return Sample(timestamp=timestamp, ttfb=ttfb, status_code=200, cache_status="HIT")


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_probe(fake_clock):
    def _make(cost: float = 0.0, ttfbs: list[float | None] | None = None) -> FakeProbe:
        return FakeProbe(fake_clock, cost=cost, ttfbs=ttfbs)

    return _make
