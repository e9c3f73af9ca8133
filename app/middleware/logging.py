"""
Request logging middleware for FastAPI using Loguru.

Logs method, path, status and latency of every request at the REQUEST
level and tags the response with an X-Request-ID header.
"""

import time
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable to store request ID across async context
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access logging with a per-request correlation ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        # Reuse an upstream request ID when a proxy supplied one
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        start_time = time.time()

        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        process_time_ms = round((time.time() - start_time) * 1000, 2)

        client_ip = request.client.host if request.client else "unknown"
        if "X-Forwarded-For" in request.headers:
            client_ip = request.headers["X-Forwarded-For"].split(",")[0].strip()

        logger.log(
            "REQUEST",
            "{method} {path} {status_code} {process_time_ms}ms {client_ip} {request_id}",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time_ms=process_time_ms,
            client_ip=client_ip,
            request_id=request_id,
        )
        return response


def add_logging_middleware(app) -> None:
    """Add the request logging middleware to the FastAPI application."""
    app.add_middleware(LoggingMiddleware)
