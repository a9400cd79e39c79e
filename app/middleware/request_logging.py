"""
Request logging middleware.

Logs method, path, status and duration of every request. Secrets carried
in headers (API key, webhook secret) are never written to the log.
"""

import time
import logging
from typing import Callable, Dict

from fastapi import Request, Response
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log all requests with timing.

    Adds an ``X-Response-Time`` header to every response.
    """

    SENSITIVE_HEADERS = {
        "authorization",
        "x-api-key",
        "x-fd-secret",
        "cookie",
    }

    QUIET_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    @classmethod
    def sanitize_headers(cls, headers: Headers) -> Dict[str, str]:
        """Headers safe for logging."""
        return {
            key: "***REDACTED***" if key.lower() in cls.SENSITIVE_HEADERS else value
            for key, value in headers.items()
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        path = request.url.path

        if path in self.QUIET_PATHS:
            return await call_next(request)

        logger.info(f"Request: {method} {path} from {client_ip}")
        logger.debug(f"Headers: {self.sanitize_headers(request.headers)}")

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Error: {method} {path} -> {type(e).__name__}: {str(e)} "
                f"({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Response: {method} {path} -> {response.status_code} "
            f"({duration_ms:.2f}ms)"
        )
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
