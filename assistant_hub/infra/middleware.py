"""Request middleware for tracking, CORS, and other cross-cutting concerns."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from assistant_hub.infra.config import config
from assistant_hub.infra.logging import request_id_var
from assistant_hub.infra.metrics import request_count, request_duration

logger = logging.getLogger("assistant_hub.request")

# Probes hit these every few seconds
UNLOGGED_PATHS = frozenset({"/health", "/health/live", "/health/ready", "/metrics"})


def route_label(request: Request) -> str:
    """Route template (``/assistant/chat``) rather than the raw path, for metric labels."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Echo ``X-Request-ID`` (or a fresh UUID) and expose it to log records."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each assistant request and record HTTP metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        quiet = path in UNLOGGED_PATHS
        start_time = time.time()

        if not quiet:
            logger.info("Request started", extra={"method": request.method, "path": path})

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": path,
                    "error": str(e),
                    "duration_ms": int((time.time() - start_time) * 1000),
                },
                exc_info=True,
            )
            raise

        elapsed = time.time() - start_time
        route = route_label(request)
        request_count.labels(method=request.method, endpoint=route, status=str(response.status_code)).inc()
        request_duration.labels(method=request.method, endpoint=route).observe(elapsed)

        if not quiet:
            logger.info(
                "Request completed",
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": int(elapsed * 1000),
                },
            )
        response.headers["X-Response-Time-Ms"] = str(int(elapsed * 1000))
        return response


def setup_cors(app):
    """Allow the dashboard and chat widget origins listed in ``CORS_ORIGINS``."""
    origins = [origin.strip() for origin in config.CORS_ORIGINS.split(",") if origin.strip()]
    if not origins and config.APP_ENV == "development":
        origins = ["*"]
    elif config.APP_ENV != "development":
        origins = [origin for origin in origins if origin != "*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Wildcard origins cannot be combined with credentials
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Response-Time-Ms"],
    )
