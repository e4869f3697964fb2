# src/outboundiq/interceptors/http_connection.py
# Interceptor for http.client, the transport layer under most Python HTTP clients
#
# urllib.request, urllib3 (and so requests), and plain http.client code all issue
# requests through the same HTTPConnection methods. HTTPSConnection, and urllib3's
# connection classes, inherit them, so wrapping them on HTTPConnection covers
# both plain and TLS traffic, whichever library sits on top.
#
# One request on a connection goes through these steps, and we observe each one:
#
#   putrequest(method, url)   -> start timing, build the full URL
#   putheader(name, value)    -> remember request headers
#   endheaders(body)          -> remember the body passed in
#   send(data)                -> remember body data streamed after the headers
#   getresponse()             -> the response arrived; watch the body as it is read
#
# When the response body has been read (or the response is closed) the call is
# tracked. An exception in any step tracks a failed call (status 0) and is
# re-raised untouched.

import http.client
import threading
import time
from http.client import HTTPConnection
from typing import Any, Optional

from outboundiq.client import TrackedCall
from outboundiq.logger import get_logger
from outboundiq.tracking.context import UserContextLike, is_suppressed, resolve_user_context
from outboundiq.utils.helpers import (
    BODY_CAPTURE_LIMIT,
    get_byte_size,
    is_collector_url,
    safe_stringify,
    sanitize_headers,
)

from .base import (
    STREAM_PLACEHOLDER,
    ClientProvider,
    default_client_provider,
    elapsed_ms,
    error_message,
    submit,
)

logger = get_logger(__name__)

_WRAPPED_METHODS = ("putrequest", "putheader", "endheaders", "send", "getresponse")

# Captured once at import, before anything can patch them
_ORIGINALS = {name: vars(HTTPConnection)[name] for name in _WRAPPED_METHODS}

# Attribute holding the in-flight call on a connection object
_CALL_ATTR = "_outboundiq_call"

# Response read methods whose results we copy into the captured body
_RESPONSE_READERS = ("read", "read1", "readinto", "readinto1", "readline")


def _chunk_text(data: Any) -> str:
    """Text of one piece of body data, without consuming streams."""
    if data is None:
        return ""
    if isinstance(data, str):
        return data[:BODY_CAPTURE_LIMIT]
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data[:BODY_CAPTURE_LIMIT]).decode("utf-8", errors="replace")
    # File objects and iterables are read by http.client itself
    return STREAM_PLACEHOLDER


def _is_tls(connection) -> bool:
    return getattr(connection, "default_port", None) == http.client.HTTPS_PORT


def build_url(connection, url: Any) -> str:
    """
    Build the full URL of a request from the connection and the request target.

    Absolute targets (proxy requests) are used as they are. Default ports
    are left out.
    """
    target = url.decode("latin-1") if isinstance(url, bytes) else str(url)
    if target.startswith(("http://", "https://")):
        return target

    tls = _is_tls(connection)
    scheme = "https" if tls else "http"

    # Through a CONNECT tunnel the connection's host is the proxy, the tunnel host is the real target
    host = getattr(connection, "_tunnel_host", None) or connection.host
    port = getattr(connection, "_tunnel_port", None) if getattr(connection, "_tunnel_host", None) else connection.port
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"

    default_port = http.client.HTTPS_PORT if tls else http.client.HTTP_PORT
    netloc = host if port in (None, default_port) else f"{host}:{port}"

    if not target.startswith("/"):
        target = "/" + target if target != "*" else ""
    return f"{scheme}://{netloc}{target}"


class _PendingCall:
    """State of one request in progress on a connection."""

    def __init__(self, client, method: str, url: str, user_context: Optional[UserContextLike], started: float):
        self.client = client
        self.method = method
        self.url = url
        self.user_context = user_context
        self.started = started
        self.duration: Optional[float] = None
        self.request_headers = []
        self.request_body: Optional[str] = None
        self.headers_sent = False
        self.failed = False

    def add_header(self, name: Any, values: tuple) -> None:
        value = ", ".join(v.decode("latin-1") if isinstance(v, bytes) else str(v) for v in values)
        self.request_headers.append((name, value))

    def add_body(self, data: Any) -> None:
        current = self.request_body or ""
        if len(current) >= BODY_CAPTURE_LIMIT:
            return
        self.request_body = (current + _chunk_text(data))[:BODY_CAPTURE_LIMIT]

    def response_arrived(self) -> None:
        self.duration = elapsed_ms(self.started)

    def complete(self, response, response_body: Optional[str]) -> None:
        try:
            call = TrackedCall(
                method=self.method,
                url=self.url,
                status_code=response.status or 0,
                duration=self.duration if self.duration is not None else elapsed_ms(self.started),
                request_headers=sanitize_headers(self.request_headers),
                response_headers=sanitize_headers(response.headers),
                request_body=safe_stringify(self.request_body),
                response_body=safe_stringify(response_body),
                request_size=get_byte_size(self.request_body),
                response_size=get_byte_size(response_body),
                user_context=self.user_context,
            )
        except Exception as e:
            logger.debug(f"Failed to record response from {self.url}: {e}")
            return
        submit(self.client, call)

    def fail(self, exc: BaseException) -> None:
        # One failure record per request, however many steps see the error
        if self.failed:
            return
        self.failed = True
        try:
            call = TrackedCall(
                method=self.method,
                url=self.url,
                status_code=0,
                duration=elapsed_ms(self.started),
                request_headers=sanitize_headers(self.request_headers),
                request_body=safe_stringify(self.request_body),
                request_size=get_byte_size(self.request_body),
                error=error_message(exc),
                user_context=self.user_context,
            )
        except Exception as e:
            logger.debug(f"Failed to record failed request to {self.url}: {e}")
            return
        submit(self.client, call)


class _ResponseCapture:
    """
    Copies a capped prefix of a response body as the application reads it.

    The read methods of the one response object are wrapped; the data they
    return is passed through untouched.
    """

    def __init__(self, call: _PendingCall, response):
        self._call = call
        self._response = response
        self._body = ""
        self._reading = False
        self._done = False

    def attach(self) -> None:
        response = self._response
        for name in _RESPONSE_READERS:
            original = getattr(response, name, None)
            if original is not None:
                setattr(response, name, self._wrap_reader(name, original))

        original_close = response.close

        def close(*args, **kwargs):
            try:
                return original_close(*args, **kwargs)
            finally:
                self._finish()

        response.close = close

        # HEAD requests, 204/304 responses, empty bodies: nothing will be read
        if response.isclosed() or getattr(response, "length", None) == 0:
            self._finish()

    def _wrap_reader(self, name: str, original):
        def reader(*args, **kwargs):
            # read() calls readinto() internally; only the outermost call is recorded
            if self._reading:
                return original(*args, **kwargs)

            self._reading = True
            try:
                result = original(*args, **kwargs)
            except Exception as exc:
                self._done = True
                self._call.fail(exc)
                raise
            finally:
                self._reading = False

            self._record(name, result, args)
            return result

        return reader

    def _record(self, name: str, result: Any, args: tuple) -> None:
        try:
            if name.startswith("readinto"):
                chunk = bytes(memoryview(args[0])[:result]) if result and args else b""
            else:
                chunk = result or b""

            if len(self._body) < BODY_CAPTURE_LIMIT and chunk:
                self._body = (self._body + _chunk_text(chunk))[:BODY_CAPTURE_LIMIT]

            # http.client closes the response itself once the body is exhausted
            if self._response.isclosed():
                self._finish()
        except Exception as e:
            logger.debug(f"Failed to capture response body from {self._call.url}: {e}")

    def _finish(self) -> None:
        if self._done:
            return
        self._done = True
        self._call.complete(self._response, self._body or None)


class HTTPConnectionInterceptor:
    """
    Tracks every request issued through http.client connections.

    patch() installs the wrappers on HTTPConnection, unpatch() restores the
    originals captured at import. Both are idempotent.
    """

    def __init__(self, client_provider: Optional[ClientProvider] = None):
        self._client_provider = client_provider or default_client_provider
        self._lock = threading.Lock()
        self._patched = False

    @property
    def is_patched(self) -> bool:
        return self._patched

    def patch(self) -> None:
        with self._lock:
            if self._patched:
                logger.debug("http.client already patched")
                return
            for name, wrapper in self._build_wrappers().items():
                setattr(HTTPConnection, name, wrapper)
            self._patched = True

        logger.info("http.client patched")

    def unpatch(self) -> None:
        with self._lock:
            if not self._patched:
                return
            for name, original in _ORIGINALS.items():
                setattr(HTTPConnection, name, original)
            self._patched = False

        logger.info("http.client restored")

    # ------------------------------------------------------------------

    def _begin(self, connection, method: Any, url: Any) -> Optional[_PendingCall]:
        started = time.perf_counter()
        try:
            client = self._client_provider()
            if client is None:
                return None
            full_url = build_url(connection, url)
            if is_collector_url(full_url, client.config.endpoint):
                return None
            if isinstance(method, bytes):
                method = method.decode("ascii", errors="replace")
            return _PendingCall(client, str(method).upper(), full_url, resolve_user_context(), started)
        except Exception as e:
            logger.debug(f"Could not start tracking request: {e}")
            return None

    def _build_wrappers(self) -> dict:
        interceptor = self
        originals = _ORIGINALS

        def call_original(name, connection, call, args, kwargs):
            try:
                return originals[name](connection, *args, **kwargs)
            except Exception as exc:
                if call is not None:
                    call.fail(exc)
                raise

        def putrequest(self, method, url, *args, **kwargs):
            call = None
            if not is_suppressed():
                call = interceptor._begin(self, method, url)
            # A new request replaces whatever was tracked on this connection before
            setattr(self, _CALL_ATTR, call)
            return call_original("putrequest", self, call, (method, url) + args, kwargs)

        def putheader(self, header, *values):
            call = getattr(self, _CALL_ATTR, None)
            result = call_original("putheader", self, call, (header,) + values, {})
            if call is not None:
                call.add_header(header, values)
            return result

        def endheaders(self, *args, **kwargs):
            call = getattr(self, _CALL_ATTR, None)
            if call is not None:
                message_body = args[0] if args else kwargs.get("message_body")
                if message_body is not None:
                    call.add_body(message_body)
            result = call_original("endheaders", self, call, args, kwargs)
            # From here on, send() carries body data
            if call is not None:
                call.headers_sent = True
            return result

        def send(self, data, *args, **kwargs):
            call = getattr(self, _CALL_ATTR, None)
            if call is not None and call.headers_sent:
                call.add_body(data)
            return call_original("send", self, call, (data,) + args, kwargs)

        def getresponse(self, *args, **kwargs):
            call = getattr(self, _CALL_ATTR, None)
            try:
                response = call_original("getresponse", self, call, args, kwargs)
            finally:
                setattr(self, _CALL_ATTR, None)

            if call is not None:
                call.response_arrived()
                try:
                    _ResponseCapture(call, response).attach()
                except Exception as e:
                    logger.debug(f"Could not watch response from {call.url}: {e}")
            return response

        wrappers = {
            "putrequest": putrequest,
            "putheader": putheader,
            "endheaders": endheaders,
            "send": send,
            "getresponse": getresponse,
        }
        for name, wrapper in wrappers.items():
            original = originals[name]
            wrapper.__name__ = original.__name__
            wrapper.__qualname__ = original.__qualname__
            wrapper.__doc__ = original.__doc__
            wrapper.__wrapped__ = original
        return wrappers


# Default interceptor, reporting to the process-wide client
_interceptor = HTTPConnectionInterceptor()


def patch_http_client() -> None:
    _interceptor.patch()


def unpatch_http_client() -> None:
    _interceptor.unpatch()


def is_http_client_patched() -> bool:
    return _interceptor.is_patched


def get_http_client_interceptor() -> HTTPConnectionInterceptor:
    return _interceptor
