# src/outboundiq/config/__init__.py
# This file makes the config folder a Python package
# It exports the configuration object and the SDK constants other modules need

from .settings import (
    TrackerConfig,
    SDK_NAME,
    SDK_VERSION,
    REQUEST_TYPE,
    DEFAULT_ENDPOINT,
    COLLECTOR_DOMAINS,
)

__all__ = [
    "TrackerConfig",
    "SDK_NAME",
    "SDK_VERSION",
    "REQUEST_TYPE",
    "DEFAULT_ENDPOINT",
    "COLLECTOR_DOMAINS",
]
