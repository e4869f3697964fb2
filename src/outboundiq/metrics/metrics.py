# src/outboundiq/metrics/metrics.py
# This file defines the SDK's own health metrics
# They answer "is tracking working?" from the host application's side:
# how many calls were captured, dropped, and whether batches reach the collector
# Prometheus collects them from the host's /metrics endpoint (see monitoring.metrics_endpoint)

# Counter: only goes up (like "how many calls did we track?")
# Histogram: records how values are spread (like "how long do sends take?")
# Labels split one metric into several series, e.g. dropped calls by reason

from prometheus_client import Counter, Histogram

# Calls accepted into the queue
# Every call an interceptor (or track()) hands over and the client keeps
CALLS_TRACKED_TOTAL = Counter(
    "outboundiq_calls_tracked_total",
    "Total number of outbound calls accepted for delivery",
)

# Calls skipped on purpose
CALLS_IGNORED_TOTAL = Counter(
    "outboundiq_calls_ignored_total",
    "Total number of outbound calls skipped by ignore patterns or self-traffic filtering",
    ["reason"]  # Label: pattern, self_traffic
)

# Calls lost because a failed batch was only partially re-queued, or the client was already shut down
CALLS_DROPPED_TOTAL = Counter(
    "outboundiq_calls_dropped_total",
    "Total number of tracked calls dropped without delivery",
    ["reason"]  # Label: send_failed, disposed
)

# Batches delivered to the collector
BATCHES_SENT_TOTAL = Counter(
    "outboundiq_batches_sent_total",
    "Total number of batches delivered to the collector",
    ["transport"]  # Label: socket, requests
)

# Batches the collector did not accept (timeout, connection error, non-2xx)
BATCHES_FAILED_TOTAL = Counter(
    "outboundiq_batches_failed_total",
    "Total number of failed batch deliveries",
    ["transport"]  # Label: socket, requests
)

# How long one send to the collector takes
# Measured around transport.send(), so batch encoding is not included
SEND_LATENCY_SECONDS = Histogram(
    "outboundiq_send_latency_seconds",
    "Latency of batch deliveries to the collector",
)
