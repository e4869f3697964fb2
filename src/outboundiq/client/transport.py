# src/outboundiq/client/transport.py
# This file delivers encoded batches to the OutboundIQ collector
#
# Two transports exist:
# - SocketTransport talks to the collector through http.client directly. It's the
#   default for normal server processes.
# - RequestsTransport uses the requests library. It's used where raw sockets are
#   not the right tool (WebAssembly interpreters, short-lived serverless contexts).
#
# Both run inside suppressed(), so the interceptors never track the SDK's own
# telemetry traffic (which would queue more telemetry, forever).

import base64
import http.client
import json
import ssl
from typing import Dict, List, Sequence
from urllib.parse import urlsplit

import requests

from outboundiq.config import SDK_NAME, SDK_VERSION, TrackerConfig
from outboundiq.logger import get_logger
from outboundiq.tracking.context import suppressed
from outboundiq.utils.helpers import get_peak_memory

from .models import TrackedCall

logger = get_logger(__name__)

# Hosts where TLS verification is skipped (local development collectors with self-signed certs)
_LOCAL_DEV_SUFFIXES = (".test", ".local")


class TransportError(Exception):
    """
    Raised when a batch could not be delivered.

    Covers timeouts, connection errors and non-2xx responses. The client
    catches it, logs it and re-queues part of the batch; it never reaches
    the host application.
    """
    pass


def is_local_dev_host(hostname: str) -> bool:
    hostname = (hostname or "").lower()
    return hostname == "localhost" or hostname.endswith(_LOCAL_DEV_SUFFIXES)


def encode_batch(calls: Sequence[TrackedCall]) -> str:
    """
    Serialize a batch into the collector's payload.

    The payload is a JSON array of wire records, base64-encoded. This is the
    format every OutboundIQ SDK sends, the collector decodes it the same way
    for all of them.
    """
    memory_peak = get_peak_memory()
    records: List[dict] = [call.to_wire(memory_peak=memory_peak) for call in calls]
    json_data = json.dumps(records, default=str)
    return base64.b64encode(json_data.encode("utf-8")).decode("ascii")


def build_headers(config: TrackerConfig) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {config.api_key}",
        "User-Agent": f"{SDK_NAME}/{SDK_VERSION}",
    }


class Transport:
    """Base class: send one encoded batch or raise TransportError."""

    name = "base"

    def send(self, payload: str, config: TrackerConfig) -> None:
        raise NotImplementedError


class SocketTransport(Transport):
    """Send batches with http.client, below any HTTP client library."""

    name = "socket"

    def send(self, payload: str, config: TrackerConfig) -> None:
        parts = urlsplit(config.endpoint)
        is_https = parts.scheme == "https"
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"

        body = payload.encode("ascii")
        headers = build_headers(config)
        headers["Content-Length"] = str(len(body))

        logger.debug(f"Using {'https' if is_https else 'http'} socket transport for metrics")

        with suppressed():
            if is_https:
                context = ssl.create_default_context()
                if is_local_dev_host(parts.hostname):
                    context.check_hostname = False
                    context.verify_mode = ssl.CERT_NONE
                connection = http.client.HTTPSConnection(
                    parts.hostname, parts.port, timeout=config.timeout_seconds, context=context
                )
            else:
                connection = http.client.HTTPConnection(
                    parts.hostname, parts.port, timeout=config.timeout_seconds
                )

            try:
                connection.request("POST", path, body=body, headers=headers)
                response = connection.getresponse()
                data = response.read()
            except TimeoutError as e:
                raise TransportError("Request timeout") from e
            except (OSError, http.client.HTTPException) as e:
                raise TransportError(f"{type(e).__name__}: {e}") from e
            finally:
                connection.close()

        if not 200 <= response.status < 300:
            detail = data.decode("utf-8", errors="replace")[:500]
            raise TransportError(f"HTTP {response.status}: {detail}")


class RequestsTransport(Transport):
    """Send batches with requests."""

    name = "requests"

    def send(self, payload: str, config: TrackerConfig) -> None:
        hostname = urlsplit(config.endpoint).hostname
        logger.debug("Using requests transport for metrics")

        with suppressed():
            try:
                response = requests.post(
                    config.endpoint,
                    data=payload,
                    headers=build_headers(config),
                    timeout=config.timeout_seconds,
                    verify=not is_local_dev_host(hostname),
                )
            except requests.Timeout as e:
                raise TransportError("Request timeout") from e
            except requests.RequestException as e:
                raise TransportError(f"{type(e).__name__}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise TransportError(f"HTTP {response.status_code}: {response.reason}")


def select_transport(runtime: str) -> Transport:
    """
    Pick the transport for a runtime.

    Server processes get the socket transport; everything else goes
    through requests.
    """
    if runtime == "server":
        return SocketTransport()
    return RequestsTransport()
