# src/outboundiq/__init__.py
# OutboundIQ: track every outbound HTTP call your application makes
#
# HOW TO USE:
# ===========
#
#   import outboundiq
#
#   outboundiq.register(api_key="sk_live_...")   # create the client, patch requests + http.client
#   ...                                          # make HTTP calls as usual, they are tracked
#   outboundiq.shutdown()                        # send what's left before the process exits
#
# Or, with the configuration in OUTBOUNDIQ_* environment variables:
#
#   outboundiq.register_from_env()

from typing import Any, Mapping, Optional, Union

from outboundiq.client import (
    OutboundIQClient,
    TrackedCall,
    configure,
    get_client,
    init,
    shutdown_client,
)
from outboundiq.config import SDK_VERSION, TrackerConfig
from outboundiq.interceptors import (
    is_http_client_patched,
    is_requests_patched,
    get_requests_interceptor,
    patch_http_client,
    patch_requests,
    unpatch_http_client,
    unpatch_requests,
)
from outboundiq.logger import get_logger
from outboundiq.tracking.context import UserContext, UserContextLike, user_context

__version__ = SDK_VERSION

logger = get_logger(__name__)

# How long shutdown() waits for responses still being captured in the background
_CAPTURE_DRAIN_TIMEOUT = 5.0


def register(config: Optional[Union[TrackerConfig, Mapping[str, Any]]] = None, **options) -> Optional[OutboundIQClient]:
    """
    Initialize the client (when options are given) and patch the HTTP entry points.

    With auto_track=False only the client is created; calls are then
    reported through track().

    Args:
        config: A TrackerConfig or a mapping of options
        **options: Options as keyword arguments

    Returns:
        The process-wide client, or None if none was configured
    """
    if config is not None or options:
        client = init(config, **options)
    else:
        client = get_client()

    if client is None:
        logger.warning("register() called without configuration and no client initialized")
        return None

    if not client.config.auto_track:
        logger.debug("auto_track disabled, HTTP entry points left untouched")
        return client

    patch_requests()
    patch_http_client()
    return client


def register_from_env(**overrides) -> Optional[OutboundIQClient]:
    """
    register() with the configuration read from OUTBOUNDIQ_* environment variables.

    A missing or invalid configuration is logged and leaves the application
    untouched instead of raising.
    """
    try:
        config = TrackerConfig.from_env(**overrides)
    except ValueError as e:
        logger.warning(f"OutboundIQ not registered: {e}")
        return None
    return register(config)


def unregister() -> None:
    """Restore the original HTTP entry points. The client keeps running."""
    unpatch_requests()
    unpatch_http_client()


def track(call: Union[TrackedCall, Mapping[str, Any]]) -> bool:
    """Queue a call by hand, for HTTP clients the interceptors don't cover."""
    client = get_client()
    if client is None:
        logger.warning("OutboundIQ not initialized. Call init() or register() first.")
        return False
    return client.track(call)


def set_user_context(context: Optional[UserContextLike]) -> None:
    """Set the client-wide user context attached to subsequent calls."""
    client = get_client()
    if client is None:
        logger.warning("OutboundIQ not initialized. Call init() or register() first.")
        return
    client.set_user_context(context)


def flush():
    """Start sending whatever is queued. Returns the send's Future, or None."""
    client = get_client()
    if client is None:
        return None
    return client.flush()


def shutdown() -> None:
    """
    Send everything still queued and stop the client, waiting for the final send.

    The interceptors stay installed but stop tracking, since there is no
    client left to report to.
    """
    get_requests_interceptor().wait_for_pending(timeout=_CAPTURE_DRAIN_TIMEOUT)
    shutdown_client()


__all__ = [
    "__version__",
    "OutboundIQClient",
    "TrackedCall",
    "TrackerConfig",
    "UserContext",
    "configure",
    "init",
    "get_client",
    "register",
    "register_from_env",
    "unregister",
    "track",
    "set_user_context",
    "user_context",
    "flush",
    "shutdown",
    "is_requests_patched",
    "is_http_client_patched",
]
