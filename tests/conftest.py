"""Shared fixtures: configs, fake transports, a recording client and a local HTTP server."""

import base64
import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from outboundiq.client import OutboundIQClient, Transport, TransportError
from outboundiq.config import TrackerConfig

TEST_ENDPOINT = "https://agent.outboundiq.test/api/metric"


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll until predicate() is true; returns its final value."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def decode_payload(payload):
    return json.loads(base64.b64decode(payload).decode("utf-8"))


def unused_port():
    """A local port nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class FakeTransport(Transport):
    """Records payloads instead of sending them; can block or fail on demand."""

    name = "fake"

    def __init__(self, fail=False, gate=None):
        self.fail = fail
        self.gate = gate
        self.payloads = []
        self.started = threading.Event()

    def send(self, payload, config):
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        self.payloads.append(payload)
        if self.fail:
            raise TransportError("collector unavailable")

    def records(self):
        return [record for payload in self.payloads for record in decode_payload(payload)]


class RecordingClient:
    """Stands in for OutboundIQClient in interceptor tests: keeps every tracked call."""

    def __init__(self, endpoint=TEST_ENDPOINT):
        self.config = TrackerConfig(api_key="test-key", endpoint=endpoint)
        self.calls = []

    def track(self, call):
        self.calls.append(call)
        return True


@pytest.fixture
def config():
    return TrackerConfig(api_key="test-key", endpoint=TEST_ENDPOINT)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_client(config):
    """Build clients on the edge runtime (no flush timer) and shut them all down afterwards."""
    clients = []

    def factory(transport=None, **options):
        client_config = config.with_options(**options) if options else config
        client = OutboundIQClient(client_config, transport=transport or FakeTransport(), runtime="edge")
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.shutdown()


@pytest.fixture
def recorder():
    return RecordingClient()


class _Handler(BaseHTTPRequestHandler):
    """
    Routes:
        /json        200 with a small JSON body
        /echo        200 echoing the request body
        /empty       204 without a body
        /status/<n>  status n with a text body
        /slow        waits half a second, then 200
        anything else: 200 "ok"
    """

    def _read_body(self):
        length = int(self.headers.get("Content-Length") or 0)
        return self.rfile.read(length) if length else b""

    def _reply(self, status, body=b"", content_type="text/plain"):
        self.send_response(status)
        if status != 204:
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
        self.send_header("Set-Cookie", "session=secret")
        self.end_headers()
        if body and status != 204:
            self.wfile.write(body)

    def _handle(self):
        body = self._read_body()
        self.server.received.append({
            "method": self.command,
            "path": self.path,
            "headers": dict(self.headers),
            "body": body,
        })

        path = self.path.split("?", 1)[0]
        if path == "/json":
            self._reply(200, b'{"ok": true}', "application/json")
        elif path == "/echo":
            self._reply(200, body)
        elif path == "/empty":
            self._reply(204)
        elif path.startswith("/status/"):
            status = int(path.rsplit("/", 1)[1])
            self._reply(status, f"status {status}".encode())
        elif path == "/slow":
            time.sleep(0.5)
            self._reply(200, b"slow")
        else:
            self._reply(200, b"ok")

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_DELETE = _handle

    def log_message(self, format, *args):
        pass


@pytest.fixture
def http_server():
    """A local HTTP server on a random port; .url is its base URL, .received the requests it got."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    server.received = []
    server.url = f"http://127.0.0.1:{server.server_address[1]}"
    server.port = server.server_address[1]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
