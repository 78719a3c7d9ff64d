"""
Access log middleware.

One structlog event per request. request_id comes from the context
processor; the authenticated subject is read from request.state because
it is resolved inside the endpoint, after this middleware handed off.
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger("edunexia_authz.access")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status, duration and acting subject."""

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        log = logger.bind(method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            log.exception(
                "Request failed",
                subject_id=getattr(request.state, "subject_id", None),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        subject_id = getattr(request.state, "subject_id", None)

        if response.status_code in (401, 403):
            log.warning("Request denied", status_code=response.status_code, subject_id=subject_id, duration_ms=duration_ms)
        else:
            log.info(
                "Request completed",
                status_code=response.status_code,
                subject_id=subject_id,
                duration_ms=duration_ms,
                client_ip=request.client.host if request.client else None,
            )

        return response
