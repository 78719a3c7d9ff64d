"""Middleware package."""

from edunexia_authz.api.middleware.request_id import RequestIdMiddleware, get_request_id
from edunexia_authz.api.middleware.logging import LoggingMiddleware

__all__ = [
    "RequestIdMiddleware",
    "get_request_id",
    "LoggingMiddleware",
]
