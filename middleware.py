"""
HTTP middleware: request ids, timing and access logging.
"""

import time
from typing import Callable, Set

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from logging_config import generate_request_id, logger, set_request_id, set_user_id


SKIP_LOGGING_PATHS: Set[str] = {
    "/",
    "/health",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id (taken from ``X-Request-ID`` when the client
    sends one), logs method, path, status and duration, and echoes the id back.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        set_user_id('')

        path = request.url.path
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        if path not in SKIP_LOGGING_PATHS:
            logger.log_request(request.method, path, response.status_code, duration_ms)

        response.headers["X-Request-ID"] = request_id
        return response
