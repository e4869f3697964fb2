# src/outboundiq/utils/__init__.py
# This file makes the utils folder a Python package

from .helpers import (
    SENSITIVE_HEADERS,
    REDACTED,
    BODY_CAPTURE_LIMIT,
    sanitize_headers,
    safe_stringify,
    should_ignore,
    get_byte_size,
    generate_id,
    get_timestamp,
    to_unix_seconds,
    parse_url,
    is_collector_url,
)

__all__ = [
    "SENSITIVE_HEADERS",
    "REDACTED",
    "BODY_CAPTURE_LIMIT",
    "sanitize_headers",
    "safe_stringify",
    "should_ignore",
    "get_byte_size",
    "generate_id",
    "get_timestamp",
    "to_unix_seconds",
    "parse_url",
    "is_collector_url",
]
