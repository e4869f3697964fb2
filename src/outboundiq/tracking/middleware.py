# src/outboundiq/tracking/middleware.py
# Flask middleware for user context management
# Every outbound call made while handling a Flask request is attributed to the
# user returned by the application's resolver function

from flask import g, has_request_context

from outboundiq.logger import get_logger
from outboundiq.tracking.context import (
    UserContextResolver,
    clear_user_context,
    set_user_context,
)

logger = get_logger(__name__)


def setup_user_context_tracking(app, resolver: UserContextResolver):
    """
    Set up user context tracking middleware for Flask.

    This middleware:
    1. Calls resolver() before each request (it can read flask.request, flask.g, the session...)
    2. Stores the result in Flask's 'g' object for request-scoped access
    3. Sets it as the ambient user context so tracked calls carry it
    4. Clears it when the request is torn down

    Args:
        app: Flask application instance
        resolver: Callable returning a UserContext (or mapping), or None for anonymous requests
    """

    @app.before_request
    def before_request():
        try:
            context = resolver()
        except Exception as e:
            # A broken resolver must not fail the request, the call just goes untagged
            logger.warning(f"User context resolver failed: {e}")
            context = None

        g.outboundiq_user_context = context
        set_user_context(context)

    @app.teardown_request
    def teardown_request(exc):
        if has_request_context():
            g.pop("outboundiq_user_context", None)
        clear_user_context()

    logger.info("OutboundIQ user context tracking middleware enabled")
