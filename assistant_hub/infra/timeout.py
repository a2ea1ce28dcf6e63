"""Request timeout configuration and middleware."""

import asyncio
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from assistant_hub.infra.config import config


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce request timeouts."""

    def __init__(self, app, timeout: float = 90):
        """
        Initialize timeout middleware.

        Args:
            app: FastAPI application
            timeout: Request timeout in seconds
        """
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request: Request, call_next):
        """Process request with timeout."""
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content={"error": f"Request timeout after {self.timeout} seconds"},
            )


# Timeout configurations (seconds)
LLM_CALL_TIMEOUT = config.LLM_CALL_TIMEOUT
# Whole-request bound leaves room for context assembly and execution around the provider call
REQUEST_TIMEOUT = LLM_CALL_TIMEOUT + 30
