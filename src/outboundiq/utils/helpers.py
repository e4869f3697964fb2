# src/outboundiq/utils/helpers.py
# Stateless helpers shared by the client and the interceptors
# None of these raise on bad input - capture is best-effort and must never
# break the host application's request
#
# parse_url() is not used inside the SDK. It is part of the public helpers for
# applications that report calls by hand through track() and want the same
# host/path split the collector shows

import json
import random
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Sequence
from urllib.parse import urlsplit

from outboundiq.config import COLLECTOR_DOMAINS

try:
    import resource
except ImportError:  # Windows
    resource = None

# Headers whose values are never sent to the collector
# Matching is by case-insensitive substring, so "X-Proxy-Authorization" is redacted too
SENSITIVE_HEADERS = (
    "authorization",
    "x-api-key",
    "api-key",
    "apikey",
    "x-auth-token",
    "cookie",
    "set-cookie",
    "x-csrf-token",
    "x-xsrf-token",
)

REDACTED = "[REDACTED]"
TRUNCATED_MARKER = "...[truncated]"
UNSERIALIZABLE = "[Unable to serialize body]"

# Bodies captured by the interceptors are cut to this many characters
BODY_CAPTURE_LIMIT = 5000

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return str(value)


def _header_items(headers: Any) -> Iterable:
    if hasattr(headers, "items"):
        return headers.items()
    return headers


def sanitize_headers(headers: Any) -> Dict[str, str]:
    """
    Redact sensitive header values.

    Accepts a dict, any header object with .items() (requests'
    CaseInsensitiveDict, http.client.HTTPMessage) or a list of
    (name, value) pairs. Repeated headers are joined with ", ".

    Example:
        sanitize_headers({"Authorization": "Bearer abc", "X-Foo": "bar"})
        # {"Authorization": "[REDACTED]", "X-Foo": "bar"}
    """
    if not headers:
        return {}

    result: Dict[str, str] = {}
    try:
        for key, value in _header_items(headers):
            key = _to_text(key)
            lower_key = key.lower()
            if any(fragment in lower_key for fragment in SENSITIVE_HEADERS):
                value = REDACTED
            elif isinstance(value, (list, tuple)):
                value = ", ".join(_to_text(v) for v in value)
            else:
                value = _to_text(value)

            if key in result and value != REDACTED:
                result[key] = f"{result[key]}, {value}"
            else:
                result[key] = value
    except Exception:
        # Whatever we managed to read is still useful
        pass

    return result


def _truncate(text: str, max_length: int) -> str:
    if len(text) > max_length:
        return text[:max_length] + TRUNCATED_MARKER
    return text


def safe_stringify(body: Any, max_length: int = 10000) -> Optional[str]:
    """
    Turn a request/response body into a bounded string for the collector.

    - None stays None
    - strings longer than max_length are cut and marked "...[truncated]"
    - bytes are summarized by length, never decoded
    - dicts/lists are JSON-encoded, then cut the same way
    - anything that fails becomes "[Unable to serialize body]"
    """
    if body is None:
        return None

    try:
        if isinstance(body, str):
            return _truncate(body, max_length)

        if isinstance(body, (bytes, bytearray, memoryview)):
            size = body.nbytes if isinstance(body, memoryview) else len(body)
            return f"[Binary data: {size} bytes]"

        if isinstance(body, (dict, list, tuple)):
            return _truncate(json.dumps(body), max_length)

        return _truncate(str(body), max_length)
    except Exception:
        return UNSERIALIZABLE


def should_ignore(url: str, patterns: Sequence) -> bool:
    """
    Check a URL against ignore patterns.

    Strings match by substring, compiled regexes by search().
    Stops at the first match.
    """
    for pattern in patterns:
        if isinstance(pattern, str):
            if pattern in url:
                return True
        elif isinstance(pattern, re.Pattern):
            if pattern.search(url):
                return True
    return False


def get_byte_size(text: Optional[str]) -> int:
    """UTF-8 encoded size of a string, 0 for empty or missing input."""
    if not text:
        return 0
    return len(text.encode("utf-8", errors="replace"))


def _base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_ID_ALPHABET[remainder])
    return "".join(reversed(digits)) or "0"


def generate_id() -> str:
    """
    Generate a transaction id.

    Format: "<milliseconds in base36>-<9 random base36 chars>", so ids
    sort roughly by creation time and collisions are unlikely.
    """
    prefix = _base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}-{suffix}"


def get_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def to_unix_seconds(timestamp: str) -> float:
    """Convert an ISO-8601 timestamp into Unix seconds (the wire format)."""
    try:
        parsed = datetime.fromisoformat(timestamp)
    except (TypeError, ValueError):
        return time.time()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def parse_url(url: Any) -> Dict[str, str]:
    """
    Split a URL into host, path (with query) and full form.

    Never raises; unparseable input comes back with host "unknown".
    """
    full = _to_text(url)
    try:
        parts = urlsplit(full)
        if not parts.netloc:
            raise ValueError(full)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        return {"host": parts.netloc, "path": path, "full": full}
    except ValueError:
        return {"host": "unknown", "path": full, "full": full}


def get_hostname(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_collector_url(url: str, endpoint: Optional[str] = None) -> bool:
    """
    True if the URL points at the OutboundIQ collector (self-traffic).

    Matches the known collector domains and their subdomains, plus the
    host of the configured endpoint (self-hosted or local collectors).
    """
    host = get_hostname(url)
    if not host:
        return False

    if any(host == domain or host.endswith("." + domain) for domain in COLLECTOR_DOMAINS):
        return True

    if endpoint:
        endpoint_host = get_hostname(endpoint)
        if endpoint_host and host == endpoint_host:
            return True

    return False


def get_peak_memory() -> int:
    """Peak resident memory of the process in bytes, 0 where the platform doesn't tell."""
    if resource is None:
        return 0
    try:
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    except (OSError, ValueError):
        return 0
    # ru_maxrss is in bytes on macOS and kilobytes everywhere else
    return peak if sys.platform == "darwin" else peak * 1024
