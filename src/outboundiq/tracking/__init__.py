# src/outboundiq/tracking/__init__.py
# This module attaches ambient context to tracked calls:
# - user context (who made the outbound call)
# - the suppression flag for the SDK's own traffic
#
# The Flask middleware lives in tracking.middleware and is imported on demand,
# so Flask is only needed by applications that use it.

from outboundiq.tracking.context import (
    UserContext,
    get_user_context,
    set_user_context,
    clear_user_context,
    user_context,
    set_user_context_resolver,
    resolve_user_context,
    user_context_to_dict,
    is_suppressed,
    suppressed,
)

__all__ = [
    "UserContext",
    "get_user_context",
    "set_user_context",
    "clear_user_context",
    "user_context",
    "set_user_context_resolver",
    "resolve_user_context",
    "user_context_to_dict",
    "is_suppressed",
    "suppressed",
]
