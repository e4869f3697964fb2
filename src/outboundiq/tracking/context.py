# src/outboundiq/tracking/context.py
# This file manages the "ambient" state that follows a unit of work:
# - the user context (who made the outbound call) attached to tracked calls
# - the suppression flag that marks the SDK's own network traffic
#
# Both live in ContextVars, so each thread / asyncio task sees its own value
# and a user context set while handling one request never leaks into another.

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union


@dataclass
class UserContext:
    """
    Who (or what) made an outbound call.

    Attributes:
        user_id: User identifier (string or number)
        user_type: User model/type, e.g. "User", "Admin", "Customer"
        context: How the request was made, e.g. "authenticated", "anonymous",
                 "job", "console", "api", "webhook"
        metadata: Any additional caller-supplied data
    """
    user_id: Optional[Union[str, int]] = None
    user_type: Optional[str] = None
    context: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        # Key names match the collector's user_context schema
        data = {
            "userId": self.user_id,
            "userType": self.user_type,
            "context": self.context,
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


UserContextLike = Union[UserContext, Mapping[str, Any]]
UserContextResolver = Callable[[], Optional[UserContextLike]]

_user_context: ContextVar[Optional[UserContextLike]] = ContextVar("outboundiq_user_context", default=None)

# Set while the SDK itself is doing network I/O (sending batches, or inside
# an already-tracked requests call), so the interceptors let it pass untouched
_suppressed: ContextVar[bool] = ContextVar("outboundiq_suppressed", default=False)

# Optional callable asked for the user context when none is set in the current context
_resolver: Optional[UserContextResolver] = None


def get_user_context() -> Optional[UserContextLike]:
    """
    Get the user context set for the current thread / task.

    Returns:
        The user context if set, None otherwise
    """
    return _user_context.get()


def set_user_context(context: Optional[UserContextLike]) -> None:
    """
    Set the user context for the current thread / task.

    Pass None to clear it.
    """
    _user_context.set(context)


def clear_user_context() -> None:
    _user_context.set(None)


@contextmanager
def user_context(context: Optional[UserContextLike]) -> Iterator[Optional[UserContextLike]]:
    """
    Context manager for setting the user context within a scope.

    The previous value is restored when the scope exits.

    Example:
        with user_context(UserContext(user_id=42, context="job")):
            requests.get("https://api.stripe.com/v1/charges")
    """
    token = _user_context.set(context)
    try:
        yield context
    finally:
        _user_context.reset(token)


def set_user_context_resolver(resolver: Optional[UserContextResolver]) -> None:
    """
    Register a callable that returns the user context on demand.

    The interceptors call it for every tracked request when no user context
    is set in the current thread / task. Pass None to remove it.
    """
    global _resolver
    _resolver = resolver


def resolve_user_context() -> Optional[UserContextLike]:
    """
    Resolve the ambient user context: the scoped value first, then the resolver.

    A failing resolver is treated as "no context"; tracking must never
    break the caller's request.
    """
    context = _user_context.get()
    if context is not None:
        return context

    resolver = _resolver
    if resolver is None:
        return None
    try:
        return resolver()
    except Exception:
        return None


def user_context_to_dict(context: Optional[UserContextLike]) -> Optional[Dict[str, Any]]:
    """Convert a UserContext or mapping into the dict sent on the wire."""
    if context is None:
        return None
    if isinstance(context, UserContext):
        return context.to_dict()
    return dict(context)


def is_suppressed() -> bool:
    """True while the SDK's own network traffic is in progress."""
    return _suppressed.get()


@contextmanager
def suppressed() -> Iterator[None]:
    """
    Mark everything inside the block as SDK-internal network traffic.

    The interceptors pass suppressed calls straight to the original entry
    points without tracking them.
    """
    token = _suppressed.set(True)
    try:
        yield
    finally:
        _suppressed.reset(token)
