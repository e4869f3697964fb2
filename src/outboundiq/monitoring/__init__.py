# src/outboundiq/monitoring/__init__.py
# This file makes the monitoring folder a Python package
# It exports the Flask endpoint that serves the SDK metrics

from .metrics_endpoint import setup_metrics_endpoint

__all__ = [
    "setup_metrics_endpoint",
]
