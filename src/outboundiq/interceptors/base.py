# src/outboundiq/interceptors/base.py
# Pieces shared by the requests and http.client interceptors

import time
from typing import Callable, Optional

from outboundiq.client import OutboundIQClient, TrackedCall, get_client
from outboundiq.logger import get_logger

logger = get_logger(__name__)

ClientProvider = Callable[[], Optional[OutboundIQClient]]

# Placeholders for bodies we must not (or cannot) read
FORM_DATA_PLACEHOLDER = "[FormData]"
STREAM_PLACEHOLDER = "[Body Stream]"
RESPONSE_STREAM_PLACEHOLDER = "[Response Stream]"


def binary_placeholder(size: int) -> str:
    return f"[Binary: {size} bytes]"


def default_client_provider() -> Optional[OutboundIQClient]:
    return get_client()


def elapsed_ms(started: float) -> float:
    """Milliseconds since a time.perf_counter() reading."""
    return (time.perf_counter() - started) * 1000


def error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def submit(client: Optional[OutboundIQClient], call: TrackedCall) -> None:
    """
    Hand a finished call to the client.

    Never raises: a tracking problem must not turn into an error in the
    application's request path.
    """
    if client is None:
        return
    try:
        client.track(call)
    except Exception as e:
        logger.debug(f"Failed to track {call.method} {call.url}: {e}")
