"""Request and watch-session context using contextvars.

Each request gets a unique ID; websocket watch sessions additionally carry
a session ID. Both are picked up by the logging processors so that every
log line emitted while handling them can be correlated.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
watch_session_id_var: ContextVar[str | None] = ContextVar(
    "watch_session_id", default=None
)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    if user_id is not None:
        user_id_var.set(str(user_id))
    else:
        user_id_var.set(None)


def get_watch_session_id() -> str | None:
    """Get the current watch session ID."""
    return watch_session_id_var.get()


def set_watch_session_id(session_id: str | None) -> None:
    """Set the watch session ID for the current context."""
    watch_session_id_var.set(session_id)


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    session_id = get_watch_session_id()
    if session_id:
        context["watch_session_id"] = session_id

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    return context


def clear_context() -> None:
    """Clear all context variables.

    This should be called at the end of each request to prevent
    context leakage between requests.
    """
    request_id_var.set("")
    user_id_var.set(None)
    watch_session_id_var.set(None)
    correlation_id_var.set(None)
