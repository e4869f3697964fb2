# src/outboundiq/interceptors/__init__.py
# Interceptors: patch the process-wide HTTP entry points so outbound calls
# are tracked without any change to application code
#
# - requests_session: requests.Session.request (requests, and everything built on it)
# - http_connection: http.client.HTTPConnection (urllib, urllib3, raw http.client)

from .base import ClientProvider, default_client_provider
from .requests_session import (
    RequestDescriptor,
    RequestsInterceptor,
    describe_request,
    patch_requests,
    unpatch_requests,
    is_requests_patched,
    get_requests_interceptor,
)
from .http_connection import (
    HTTPConnectionInterceptor,
    build_url,
    patch_http_client,
    unpatch_http_client,
    is_http_client_patched,
    get_http_client_interceptor,
)

__all__ = [
    "ClientProvider",
    "default_client_provider",
    "RequestDescriptor",
    "RequestsInterceptor",
    "describe_request",
    "patch_requests",
    "unpatch_requests",
    "is_requests_patched",
    "get_requests_interceptor",
    "HTTPConnectionInterceptor",
    "build_url",
    "patch_http_client",
    "unpatch_http_client",
    "is_http_client_patched",
    "get_http_client_interceptor",
]
