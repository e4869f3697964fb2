# src/outboundiq/metrics/__init__.py
# This file makes the metrics folder a Python package
# It also controls what gets imported when someone does "from outboundiq.metrics import ..."

from .metrics import (
    CALLS_TRACKED_TOTAL,
    CALLS_IGNORED_TOTAL,
    CALLS_DROPPED_TOTAL,
    BATCHES_SENT_TOTAL,
    BATCHES_FAILED_TOTAL,
    SEND_LATENCY_SECONDS,
)

__all__ = [
    "CALLS_TRACKED_TOTAL",
    "CALLS_IGNORED_TOTAL",
    "CALLS_DROPPED_TOTAL",
    "BATCHES_SENT_TOTAL",
    "BATCHES_FAILED_TOTAL",
    "SEND_LATENCY_SECONDS",
]
