# src/outboundiq/client/__init__.py
# The tracking client: queueing, batching and delivery of tracked calls

from .models import TrackedCall
from .transport import (
    Transport,
    TransportError,
    SocketTransport,
    RequestsTransport,
    encode_batch,
    select_transport,
)
from .client import (
    OutboundIQClient,
    configure,
    detect_runtime,
    init,
    get_client,
    shutdown_client,
    MAX_QUEUE_SIZE,
    REQUEUE_LIMIT,
)

__all__ = [
    "TrackedCall",
    "Transport",
    "TransportError",
    "SocketTransport",
    "RequestsTransport",
    "encode_batch",
    "select_transport",
    "OutboundIQClient",
    "configure",
    "detect_runtime",
    "init",
    "get_client",
    "shutdown_client",
    "MAX_QUEUE_SIZE",
    "REQUEUE_LIMIT",
]
