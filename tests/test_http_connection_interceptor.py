"""Tests for the http.client interceptor."""

import http.client
import urllib.request
from http.client import HTTPConnection, HTTPSConnection

import pytest

from conftest import RecordingClient, unused_port
from outboundiq.interceptors import HTTPConnectionInterceptor, build_url
from outboundiq.interceptors.http_connection import _ORIGINALS
from outboundiq.utils.helpers import REDACTED
from outboundiq.tracking.context import UserContext, suppressed, user_context


@pytest.fixture
def interceptor(recorder):
    interceptor = HTTPConnectionInterceptor(client_provider=lambda: recorder)
    interceptor.patch()
    yield interceptor
    interceptor.unpatch()


def _get(server, path, **kwargs):
    conn = HTTPConnection("127.0.0.1", server.port, timeout=5)
    conn.request("GET", path, **kwargs)
    return conn, conn.getresponse()


class TestPatching:
    def test_patch_and_unpatch_are_idempotent(self, recorder):
        interceptor = HTTPConnectionInterceptor(client_provider=lambda: recorder)

        interceptor.patch()
        interceptor.patch()
        assert interceptor.is_patched
        assert vars(HTTPConnection)["putrequest"] is not _ORIGINALS["putrequest"]

        interceptor.unpatch()
        interceptor.unpatch()
        assert not interceptor.is_patched
        for name, original in _ORIGINALS.items():
            assert vars(HTTPConnection)[name] is original

    def test_https_connections_inherit_the_wrappers(self, interceptor):
        assert HTTPSConnection.putrequest is HTTPConnection.putrequest
        assert HTTPSConnection.getresponse is HTTPConnection.getresponse


class TestTracking:
    def test_get_with_response_body(self, interceptor, recorder, http_server):
        conn, response = _get(http_server, "/json", headers={"Authorization": "Bearer x", "X-Trace": "1"})
        body = response.read()
        conn.close()

        assert body == b'{"ok": true}'
        assert len(recorder.calls) == 1
        call = recorder.calls[0]
        assert call.method == "GET"
        assert call.url == f"{http_server.url}/json"
        assert call.status_code == 200
        assert call.response_body == '{"ok": true}'
        assert call.response_size == 12
        assert call.request_headers["Authorization"] == REDACTED
        assert call.request_headers["X-Trace"] == "1"
        assert call.request_headers["Host"] == f"127.0.0.1:{http_server.port}"
        assert call.response_headers["Set-Cookie"] == REDACTED
        assert call.duration >= 0
        assert call.error is None

    def test_body_read_in_chunks(self, interceptor, recorder, http_server):
        conn, response = _get(http_server, "/json")
        chunks = []
        while True:
            chunk = response.read(3)
            if not chunk:
                break
            chunks.append(chunk)
        conn.close()

        assert b"".join(chunks) == b'{"ok": true}'
        assert len(recorder.calls) == 1
        assert recorder.calls[0].response_body == '{"ok": true}'

    def test_not_tracked_until_body_consumed_or_closed(self, interceptor, recorder, http_server):
        conn, response = _get(http_server, "/json")
        assert recorder.calls == []

        response.close()
        conn.close()
        assert len(recorder.calls) == 1
        assert recorder.calls[0].response_body is None

    def test_empty_response_tracked_immediately(self, interceptor, recorder, http_server):
        conn, response = _get(http_server, "/empty")
        assert response.status == 204
        assert len(recorder.calls) == 1
        assert recorder.calls[0].status_code == 204

        response.read()
        response.close()
        conn.close()
        assert len(recorder.calls) == 1

    def test_urllib_post_captures_request_body(self, interceptor, recorder, http_server):
        request = urllib.request.Request(f"{http_server.url}/echo", data=b"hello", method="POST")
        with urllib.request.urlopen(request, timeout=5) as response:
            assert response.read() == b"hello"

        assert len(recorder.calls) == 1
        call = recorder.calls[0]
        assert call.method == "POST"
        assert call.request_body == "hello"
        assert call.request_size == 5
        assert call.response_body == "hello"

    def test_body_sent_after_headers(self, interceptor, recorder, http_server):
        conn = HTTPConnection("127.0.0.1", http_server.port, timeout=5)
        conn.putrequest("PUT", "/echo")
        conn.putheader("Content-Length", "10")
        conn.endheaders()
        conn.send(b"hello")
        conn.send(b"world")
        response = conn.getresponse()
        assert response.read() == b"helloworld"
        conn.close()

        assert recorder.calls[0].request_body == "helloworld"

    def test_error_status_is_tracked_not_raised(self, interceptor, recorder, http_server):
        conn, response = _get(http_server, "/status/503")
        response.read()
        conn.close()

        assert recorder.calls[0].status_code == 503
        assert recorder.calls[0].error is None

    def test_user_context_captured_at_request_time(self, interceptor, recorder, http_server):
        with user_context(UserContext(user_id=42)):
            conn, response = _get(http_server, "/json")
        response.read()
        conn.close()

        assert recorder.calls[0].user_context.user_id == 42


class TestFailures:
    def test_connection_refused_tracked_once_and_reraised(self, interceptor, recorder):
        conn = HTTPConnection("127.0.0.1", unused_port(), timeout=5)
        with pytest.raises(ConnectionRefusedError):
            conn.request("GET", "/nothing")

        assert len(recorder.calls) == 1
        call = recorder.calls[0]
        assert call.status_code == 0
        assert call.error
        assert call.url.endswith("/nothing")

    def test_timeout_tracked_and_reraised(self, interceptor, recorder, http_server):
        conn = HTTPConnection("127.0.0.1", http_server.port, timeout=0.1)
        conn.request("GET", "/slow")
        with pytest.raises(TimeoutError):
            conn.getresponse()
        conn.close()

        assert len(recorder.calls) == 1
        assert recorder.calls[0].status_code == 0


class TestSkipped:
    def test_collector_host_not_tracked(self, http_server):
        recorder = RecordingClient(endpoint=f"{http_server.url}/api/metric")
        interceptor = HTTPConnectionInterceptor(client_provider=lambda: recorder)
        interceptor.patch()
        try:
            conn, response = _get(http_server, "/json")
            response.read()
            conn.close()
        finally:
            interceptor.unpatch()

        assert recorder.calls == []

    def test_suppressed_not_tracked(self, interceptor, recorder, http_server):
        with suppressed():
            conn, response = _get(http_server, "/json")
            response.read()
            conn.close()

        assert recorder.calls == []

    def test_no_client_passes_through(self, http_server):
        interceptor = HTTPConnectionInterceptor(client_provider=lambda: None)
        interceptor.patch()
        try:
            conn, response = _get(http_server, "/json")
            assert response.read() == b'{"ok": true}'
            conn.close()
        finally:
            interceptor.unpatch()

    def test_broken_client_never_breaks_the_request(self, http_server):
        class BrokenClient(RecordingClient):
            def track(self, call):
                raise RuntimeError("queue exploded")

        interceptor = HTTPConnectionInterceptor(client_provider=lambda: BrokenClient())
        interceptor.patch()
        try:
            conn, response = _get(http_server, "/json")
            assert response.read() == b'{"ok": true}'
            conn.close()
        finally:
            interceptor.unpatch()


class TestBuildUrl:
    def test_plain_http(self):
        assert build_url(HTTPConnection("example.com"), "/path?q=1") == "http://example.com/path?q=1"

    def test_https_default_port_left_out(self):
        assert build_url(HTTPSConnection("example.com", 443), "/x") == "https://example.com/x"

    def test_non_default_port(self):
        assert build_url(HTTPSConnection("example.com", 8443), "/x") == "https://example.com:8443/x"
        assert build_url(HTTPConnection("example.com", 8080), b"/x") == "http://example.com:8080/x"

    def test_absolute_target_used_as_is(self):
        assert build_url(HTTPConnection("proxy", 3128), "http://api.example.com/v1") == "http://api.example.com/v1"

    def test_tunnel_reports_the_real_host(self):
        conn = HTTPSConnection("proxy", 3128)
        conn.set_tunnel("api.example.com")
        assert build_url(conn, "/v1") == "https://api.example.com/v1"

    def test_ipv6_host(self):
        assert build_url(HTTPConnection("::1", 8000), "/") == "http://[::1]:8000/"


def test_is_http_client_module_untouched_after_unpatch(recorder):
    interceptor = HTTPConnectionInterceptor(client_provider=lambda: recorder)
    interceptor.patch()
    interceptor.unpatch()
    assert http.client.HTTPConnection.send is _ORIGINALS["send"]
