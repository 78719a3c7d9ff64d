"""
Request context for log correlation.

Usage:
    # In middleware (automatic)
    app.add_middleware(RequestIdMiddleware)

    # Set the acting user once authenticated
    set_context_subject(subject.id)

    # Every structlog event then carries request_id / subject_id
    configure_logging("INFO", "json")
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Optional

import structlog


# Request-scoped context using contextvars (async-safe)
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_subject_id: ContextVar[Optional[int]] = ContextVar("subject_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID."""
    return _request_id.get()


def set_request_id(request_id: Optional[str]):
    """Set the request ID; returns a token for reset_request_id."""
    return _request_id.set(request_id)


def reset_request_id(token) -> None:
    _request_id.reset(token)


def get_context_subject() -> Optional[int]:
    return _subject_id.get()


def set_context_subject(subject_id: Optional[int]) -> None:
    """
    Record the authenticated subject for the rest of the request.

    Call this from auth dependencies after authentication.
    """
    _subject_id.set(subject_id)


# ============================================================
# STRUCTLOG
# ============================================================

def add_request_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that adds request context to all logs."""
    request_id = get_request_id()
    subject_id = get_context_subject()

    if request_id:
        event_dict.setdefault("request_id", request_id)
    if subject_id is not None:
        event_dict.setdefault("subject_id", subject_id)

    return event_dict


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """
    Configure structlog and the stdlib root logger.

    fmt: "json" for production, "console" for local development
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=log_level)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_request_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
