# src/outboundiq/interceptors/requests_session.py
# Interceptor for the requests library
#
# Every requests call (requests.get, requests.post, Session.get, ...) ends up in
# requests.Session.request, so wrapping that one method observes them all.
#
# The wrapper:
# 1. describes the call (method, URL, headers, body summary) before sending it
# 2. calls the original Session.request with the exact same arguments
# 3. on an exception: tracks a failed call and re-raises the exception unchanged
# 4. on success: returns the response right away and captures it in the background

import inspect
import json
import threading
import time
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Optional, Set
from urllib.parse import urlencode

import requests
from requests.models import PreparedRequest
from requests.sessions import merge_setting
from requests.structures import CaseInsensitiveDict

from outboundiq.client import TrackedCall
from outboundiq.logger import get_logger
from outboundiq.tracking.context import (
    UserContextLike,
    is_suppressed,
    resolve_user_context,
    suppressed,
)
from outboundiq.utils.helpers import (
    BODY_CAPTURE_LIMIT,
    get_byte_size,
    is_collector_url,
    safe_stringify,
    sanitize_headers,
)

from .base import (
    FORM_DATA_PLACEHOLDER,
    RESPONSE_STREAM_PLACEHOLDER,
    STREAM_PLACEHOLDER,
    ClientProvider,
    binary_placeholder,
    default_client_provider,
    elapsed_ms,
    error_message,
    submit,
)

logger = get_logger(__name__)

# Captured once at import, before anything can patch it
_original_request = requests.Session.request
_original_signature = inspect.signature(_original_request)


@dataclass
class RequestDescriptor:
    """Everything the tracker needs to know about a call before it is sent."""
    method: str
    url: str
    headers: Any
    body: Optional[str]
    stream: bool


def _resolve_url(url: Any, params: Any, session: requests.Session) -> str:
    # Same coercion requests applies: bytes are decoded, anything else goes through str()
    if isinstance(url, bytes):
        text = url.decode("utf-8", errors="replace")
    else:
        text = str(url)

    merged_params = merge_setting(params, session.params)
    if not merged_params:
        return text

    try:
        prepared = PreparedRequest()
        prepared.prepare_url(text, merged_params)
        return prepared.url
    except Exception:
        return text


def _summarize_body(data: Any, json_body: Any, files: Any) -> Optional[str]:
    """
    Describe the request body without consuming it.

    Strings and form fields are captured (capped); multipart uploads,
    binary payloads and streams get a placeholder instead.
    """
    try:
        if files:
            return FORM_DATA_PLACEHOLDER

        if data:
            if isinstance(data, str):
                return data[:BODY_CAPTURE_LIMIT]
            if isinstance(data, (bytes, bytearray, memoryview)):
                try:
                    return bytes(data).decode("utf-8")[:BODY_CAPTURE_LIMIT]
                except UnicodeDecodeError:
                    size = data.nbytes if isinstance(data, memoryview) else len(data)
                    return binary_placeholder(size)
            if isinstance(data, (Mapping, list, tuple)):
                return urlencode(data, doseq=True)[:BODY_CAPTURE_LIMIT]
            # File objects and generators: reading them would steal the data from requests
            return STREAM_PLACEHOLDER

        if json_body is not None:
            return json.dumps(json_body)[:BODY_CAPTURE_LIMIT]

        return None
    except Exception:
        return None


def describe_request(session: requests.Session, args: tuple, kwargs: dict) -> RequestDescriptor:
    """
    Normalize a Session.request call into a RequestDescriptor.

    Arguments are bound against the original signature, so positional and
    keyword calls are read the same way. Session-level headers are merged
    under the call's own headers, the call's values win.
    """
    bound = _original_signature.bind(session, *args, **kwargs)
    arguments = bound.arguments

    method = arguments.get("method") or "GET"
    if isinstance(method, bytes):
        method = method.decode("ascii", errors="replace")

    headers = merge_setting(arguments.get("headers"), session.headers, dict_class=CaseInsensitiveDict)

    stream = arguments.get("stream")
    if stream is None:
        stream = session.stream

    return RequestDescriptor(
        method=str(method).upper(),
        url=_resolve_url(arguments.get("url"), arguments.get("params"), session),
        headers=headers,
        body=_summarize_body(arguments.get("data"), arguments.get("json"), arguments.get("files")),
        stream=bool(stream),
    )


def _read_response_body(response: requests.Response, stream: bool) -> Optional[str]:
    # A streamed response belongs to the caller, reading it here would consume it
    if stream:
        return RESPONSE_STREAM_PLACEHOLDER

    content = response.content
    if not content:
        return None

    encoding = response.encoding or "utf-8"
    try:
        text = content.decode(encoding, errors="replace")
    except LookupError:
        text = content.decode("utf-8", errors="replace")
    return text[:BODY_CAPTURE_LIMIT]


class RequestsInterceptor:
    """
    Tracks every call made through requests.

    patch() installs the wrapper on requests.Session.request, unpatch()
    puts the original back. Both are idempotent.
    """

    def __init__(self, client_provider: Optional[ClientProvider] = None, capture_workers: int = 2):
        self._client_provider = client_provider or default_client_provider
        self._capture_workers = capture_workers
        self._lock = threading.Lock()
        self._patched = False
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

    @property
    def is_patched(self) -> bool:
        return self._patched

    def patch(self) -> None:
        with self._lock:
            if self._patched:
                logger.debug("requests already patched")
                return

            interceptor = self

            def tracked_request(session, *args, **kwargs):
                return interceptor._intercept(session, args, kwargs)

            tracked_request.__name__ = _original_request.__name__
            tracked_request.__qualname__ = _original_request.__qualname__
            tracked_request.__doc__ = _original_request.__doc__
            tracked_request.__wrapped__ = _original_request

            self._executor = ThreadPoolExecutor(
                max_workers=self._capture_workers, thread_name_prefix="outboundiq-capture"
            )
            requests.Session.request = tracked_request
            self._patched = True

        logger.info("requests patched")

    def unpatch(self) -> None:
        with self._lock:
            if not self._patched:
                return
            requests.Session.request = _original_request
            self._patched = False
            executor = self._executor
            self._executor = None

        # Captures already queued still run to completion
        if executor is not None:
            executor.shutdown(wait=False)
        logger.info("requests restored")

    def wait_for_pending(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for background response captures to finish.

        Returns:
            True if all of them finished within the timeout
        """
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    # ------------------------------------------------------------------

    def _intercept(self, session, args, kwargs):
        # The SDK's own traffic, or a call nested in one we're already tracking
        if is_suppressed():
            return _original_request(session, *args, **kwargs)

        started = time.perf_counter()

        try:
            descriptor = describe_request(session, args, kwargs)
            client = self._client_provider()
        except Exception as e:
            # Bad arguments: let requests raise its own error for them
            logger.debug(f"Could not describe request, not tracking it: {e}")
            return _original_request(session, *args, **kwargs)

        if client is None or is_collector_url(descriptor.url, client.config.endpoint):
            return _original_request(session, *args, **kwargs)

        user_context = resolve_user_context()

        try:
            # urllib3 / http.client activity inside this call is part of this call
            with suppressed():
                response = _original_request(session, *args, **kwargs)
        except Exception as exc:
            self._track_failure(client, descriptor, started, user_context, exc)
            raise

        self._capture_in_background(client, descriptor, response, elapsed_ms(started), user_context)
        return response

    def _track_failure(self, client, descriptor: RequestDescriptor, started: float,
                       user_context: Optional[UserContextLike], exc: Exception) -> None:
        try:
            call = TrackedCall(
                method=descriptor.method,
                url=descriptor.url,
                status_code=0,
                duration=elapsed_ms(started),
                request_headers=sanitize_headers(descriptor.headers),
                request_body=safe_stringify(descriptor.body),
                request_size=get_byte_size(descriptor.body),
                error=error_message(exc),
                user_context=user_context,
            )
        except Exception as e:
            logger.debug(f"Failed to record failed request to {descriptor.url}: {e}")
            return
        submit(client, call)

    def _capture_in_background(self, client, descriptor: RequestDescriptor, response,
                               duration: float, user_context: Optional[UserContextLike]) -> None:
        executor = self._executor
        if executor is None:
            return
        try:
            future = executor.submit(self._capture_response, client, descriptor, response, duration, user_context)
        except RuntimeError:
            # Unpatched (and the executor shut down) while this call was running
            return

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)

    def _discard_pending(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _capture_response(self, client, descriptor: RequestDescriptor, response,
                          duration: float, user_context: Optional[UserContextLike]) -> None:
        try:
            response_body = _read_response_body(response, descriptor.stream)
            call = TrackedCall(
                method=descriptor.method,
                url=descriptor.url,
                status_code=response.status_code,
                duration=duration,
                request_headers=sanitize_headers(descriptor.headers),
                response_headers=sanitize_headers(response.headers),
                request_body=safe_stringify(descriptor.body),
                response_body=safe_stringify(response_body),
                request_size=get_byte_size(descriptor.body),
                response_size=get_byte_size(response_body),
                user_context=user_context,
            )
        except Exception as e:
            logger.debug(f"Failed to capture response from {descriptor.url}: {e}")
            return
        submit(client, call)


# Default interceptor, reporting to the process-wide client
_interceptor = RequestsInterceptor()


def patch_requests() -> None:
    _interceptor.patch()


def unpatch_requests() -> None:
    _interceptor.unpatch()


def is_requests_patched() -> bool:
    return _interceptor.is_patched


def get_requests_interceptor() -> RequestsInterceptor:
    return _interceptor
