# src/outboundiq/config/settings.py
# This file provides the configuration for the OutboundIQ tracking client
# Configuration is resolved once, when the client is created, and never changes afterwards
# Keeping it in one frozen object means every component (client, transports, interceptors)
# sees exactly the same values for the lifetime of the client

import os
import re
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping, Optional, Pattern, Tuple, Union

# SDK identification sent with every batch
# The collector uses these to tell SDKs apart (the same collector serves PHP, JS and Python)
SDK_NAME = "OutboundIQ-Python"
SDK_VERSION = "0.1.0"
REQUEST_TYPE = "python"

# Production ingest endpoint
DEFAULT_ENDPOINT = "https://agent.outboundiq.dev/api/metric"

# Domains that belong to the collector itself
# Calls to these hosts are never tracked, otherwise sending telemetry would be tracked too
COLLECTOR_DOMAINS = (
    "outboundiq.dev",
    "outboundiq.io",
    "outboundiq.test",
    "outboundiq.com",
)

IgnorePattern = Union[str, Pattern[str]]


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class TrackerConfig:
    """
    Configuration for the tracking client.

    frozen=True makes the object immutable - once the client is created,
    nobody can change its batch size or endpoint behind its back.

    Times are in milliseconds, like the other OutboundIQ SDKs:
    - flush_interval: how often queued calls are sent (default 5000ms)
    - timeout: how long one send to the collector may take (default 5000ms)
    """
    # API key - required, the collector derives the project from it
    api_key: str = ""

    # Where batches are sent
    endpoint: str = DEFAULT_ENDPOINT

    # Debug mode - logs every tracked call and every flush
    debug: bool = False

    # Flush as soon as this many calls are queued
    batch_size: int = 10

    # Flush at least this often (milliseconds)
    flush_interval: int = 5000

    # Per-send timeout (milliseconds)
    timeout: int = 5000

    # URLs matching any of these are never tracked
    # Plain strings match by substring, compiled regular expressions by search()
    ignore_patterns: Tuple[IgnorePattern, ...] = field(default_factory=tuple)

    # Whether register() installs the interceptors automatically
    auto_track: bool = True

    def __post_init__(self):
        # Accept any iterable (usually a list) but store a tuple so the config stays immutable
        if not isinstance(self.ignore_patterns, tuple):
            object.__setattr__(self, "ignore_patterns", tuple(self.ignore_patterns or ()))

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    @property
    def flush_interval_seconds(self) -> float:
        return self.flush_interval / 1000

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None, **overrides) -> "TrackerConfig":
        """
        Build a config from a mapping of options, filling in defaults.

        Unknown option names raise ValueError so typos don't silently
        fall back to defaults.

        Args:
            options: Mapping of option name to value (snake_case names)
            **overrides: Same options as keyword arguments, these win over options

        Returns:
            A validated TrackerConfig
        """
        merged = dict(options or {})
        merged.update(overrides)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(merged) - known)
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}")

        # None means "use the default", same as leaving the option out
        config = cls(**{k: v for k, v in merged.items() if v is not None})
        config.validate()
        return config

    @classmethod
    def from_env(cls, **overrides) -> "TrackerConfig":
        """
        Build a config from OUTBOUNDIQ_* environment variables.

        Environment variables:
            OUTBOUNDIQ_KEY: API key (required)
            OUTBOUNDIQ_ENDPOINT: Collector endpoint
            OUTBOUNDIQ_DEBUG: "true" to enable debug logging
            OUTBOUNDIQ_BATCH_SIZE, OUTBOUNDIQ_FLUSH_INTERVAL, OUTBOUNDIQ_TIMEOUT

        Args:
            **overrides: Explicit options, these win over the environment
        """
        env_options = {
            "api_key": os.getenv("OUTBOUNDIQ_KEY"),
            "endpoint": os.getenv("OUTBOUNDIQ_ENDPOINT") or None,
            "debug": _parse_bool(os.getenv("OUTBOUNDIQ_DEBUG")),
            "batch_size": _int_env("OUTBOUNDIQ_BATCH_SIZE"),
            "flush_interval": _int_env("OUTBOUNDIQ_FLUSH_INTERVAL"),
            "timeout": _int_env("OUTBOUNDIQ_TIMEOUT"),
        }
        return cls.from_options(env_options, **overrides)

    def with_options(self, **changes) -> "TrackerConfig":
        """Return a copy of this config with some options changed."""
        config = replace(self, **changes)
        config.validate()
        return config

    def validate(self):
        """
        Validate configuration values.

        Raises:
            ValueError: If a value is missing or out of range
        """
        if not self.api_key:
            raise ValueError("api_key is required")
        if not self.endpoint or not self.endpoint.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be an http(s) URL, got {self.endpoint!r}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.flush_interval <= 0:
            raise ValueError(f"flush_interval must be positive, got {self.flush_interval}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        for pattern in self.ignore_patterns:
            if not isinstance(pattern, (str, re.Pattern)):
                raise ValueError(
                    f"ignore_patterns must contain strings or compiled regexes, got {type(pattern).__name__}"
                )

    def to_dict(self) -> dict:
        """Read-only snapshot of the configuration (the API key is masked)."""
        return {
            "api_key": _mask(self.api_key),
            "endpoint": self.endpoint,
            "debug": self.debug,
            "batch_size": self.batch_size,
            "flush_interval": self.flush_interval,
            "timeout": self.timeout,
            "ignore_patterns": [getattr(p, "pattern", p) for p in self.ignore_patterns],
            "auto_track": self.auto_track,
        }


def _int_env(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"
