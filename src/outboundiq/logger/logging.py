# src/outboundiq/logger/logging.py
# This file sets up logging for the SDK
# Logging is how the SDK tells you what it is doing in the background:
# which calls it tracked, when it flushed, and why a send failed
# All SDK loggers live under the "outboundiq" namespace, so the host application
# can silence, redirect or raise them like any other library's loggers
# Note: We use Python's built-in 'logging' module here, which is why the folder is named 'logger'

import logging
import sys
from typing import Optional

# Logging levels the SDK uses:
# DEBUG: every tracked call, every flush, transport selection (debug=True)
# INFO: interceptors patched or restored, middleware enabled
# WARNING: calls dropped after a failed send, register() without configuration
# ERROR: a batch could not be delivered to the collector

# Every SDK logger is a child of this one, so configuring it configures them all
ROOT_LOGGER_NAME = "outboundiq"

# Marks the handler we install, so setup_logging() can be called again without duplicating output
_HANDLER_NAME = "outboundiq-stdout"


class UserContextFilter(logging.Filter):
    """
    Logging filter that adds the ambient user id to all log records.

    Makes it easy to tell which user's outbound calls a log line is about.
    """

    def filter(self, record):
        try:
            from outboundiq.tracking.context import get_user_context, user_context_to_dict
            context = user_context_to_dict(get_user_context()) or {}
            user_id = context.get("userId")
            record.user_id = user_id if user_id is not None else "-"
        except Exception:
            record.user_id = "-"

        return True


def setup_logging(debug: bool = False, level: Optional[str] = None):
    """
    Configure the SDK's loggers.

    In debug mode every tracked call and flush is logged; otherwise only
    warnings and errors come through. Errors (failed sends) are always logged.

    Args:
        debug: Enable debug logging
        level: Explicit level name (DEBUG, INFO, WARNING, ERROR), wins over debug
    """
    log_level = level or ("DEBUG" if debug else "WARNING")
    numeric_level = getattr(logging, log_level.upper(), logging.WARNING)

    sdk_logger = logging.getLogger(ROOT_LOGGER_NAME)
    sdk_logger.setLevel(numeric_level)

    if not any(h.get_name() == _HANDLER_NAME for h in sdk_logger.handlers):
        formatter = logging.Formatter(
            '%(asctime)s - [%(user_id)s] - %(name)s - %(levelname)s - %(message)s'
        )
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(formatter)
        handler.addFilter(UserContextFilter())
        sdk_logger.addHandler(handler)

    # Our handler prints the records, don't print them twice through the root logger
    sdk_logger.propagate = False


def get_logger(name: Optional[str] = None):
    """
    Get a logger for an SDK module.

    Args:
        name: Usually __name__ of the calling module. Names outside the
              "outboundiq" namespace are nested under it.

    Returns:
        A logger object
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
