# Core infrastructure
from ecolearn.core.context import (
    clear_context,
    get_context,
    get_request_id,
    get_user_id,
    get_watch_session_id,
    set_request_id,
    set_user_id,
    set_watch_session_id,
)
from ecolearn.core.logging import configure_structlog, get_logger
from ecolearn.core.middleware import RequestContextMiddleware
from ecolearn.core.periodic import PeriodicTask


__all__ = [
    "PeriodicTask",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_user_id",
    "get_watch_session_id",
    "set_request_id",
    "set_user_id",
    "set_watch_session_id",
]
