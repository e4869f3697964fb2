# src/outboundiq/monitoring/metrics_endpoint.py
# This file exposes the SDK metrics on a Prometheus endpoint of the host's Flask app
# Prometheus scrapes (pulls) metrics from a /metrics endpoint periodically

from flask import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from outboundiq.logger import get_logger

logger = get_logger(__name__)


def setup_metrics_endpoint(app, path: str = "/metrics"):
    """
    Set up a metrics endpoint for Prometheus to scrape.

    The endpoint returns every metric registered in the default
    prometheus_client registry, so the host application's own metrics
    show up next to the outboundiq_* ones.

    Args:
        app: Flask application instance
        path: URL path of the endpoint (default /metrics)

    Example Prometheus output:
        # HELP outboundiq_calls_tracked_total Total number of outbound calls accepted for delivery
        # TYPE outboundiq_calls_tracked_total counter
        outboundiq_calls_tracked_total 1234.0
    """

    def metrics():
        try:
            return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
        except Exception as e:
            # The metrics endpoint failing must not break the app
            logger.error(f"Error generating metrics: {e}", exc_info=True)
            return Response(
                f"Error generating metrics: {str(e)}",
                status=500,
                mimetype='text/plain'
            )

    app.add_url_rule(path, endpoint="outboundiq_metrics", view_func=metrics, methods=["GET"])
    logger.info(f"Prometheus metrics endpoint registered at {path}")
