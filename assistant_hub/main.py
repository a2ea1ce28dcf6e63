"""FastAPI assistant application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from assistant_hub.infra.config import config
from assistant_hub.infra.error_handler import ProviderError, RateLimitedError
from assistant_hub.infra.logging import app_logger, request_id_var


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    app_logger.info(
        "Assistant hub starting",
        extra={"app_env": config.APP_ENV, "default_provider": config.DEFAULT_PROVIDER},
    )

    yield

    from assistant_hub.infra.database import engine
    engine.dispose()
    app_logger.info("Assistant hub stopped")


app = FastAPI(
    title="Assistant Hub API",
    description="""
    Assistant Hub turns a user's message into a provider call grounded in live
    tenant data, and executes the structured action the model proposes.

    ## Endpoints

    - **Public chat**: end customers ask about their services, charges and plans
    - **Contextual assistant**: role-aware dashboard assistant (operator, org admin, reseller, end customer)
    - **Expense assistant**: staff users manage expenses in natural language

    Destructive actions wait for an explicit confirmation in the same session.

    ## Errors

    Every error body is `{"error": "<message>"}`. Provider configuration
    problems answer 400, rejected keys 401, provider rate limits 429 (with
    `Retry-After` when known) and unavailable providers 500.
    """,
    version="1.0.0",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Assistant",
            "description": "Conversational endpoints that may propose and execute actions",
        },
        {
            "name": "Health",
            "description": "Health check and monitoring endpoints",
        },
    ],
)

# Setup middleware (last added runs first)
from assistant_hub.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware, setup_cors
from assistant_hub.infra.timeout import TimeoutMiddleware, REQUEST_TIMEOUT

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TimeoutMiddleware, timeout=REQUEST_TIMEOUT)
app.add_middleware(RequestIDMiddleware)
setup_cors(app)

from assistant_hub.api.routers import assistant, health

app.include_router(assistant.router)
app.include_router(health.router)

# Message plus history; anything larger is not a chat turn
MAX_REQUEST_SIZE = 256 * 1024


@app.middleware("http")
async def request_size_limit_middleware(request: Request, call_next):
    """Reject oversized assistant requests before the body is parsed."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
        return JSONResponse(
            status_code=413,
            content={"error": f"Request too large. Maximum size: {MAX_REQUEST_SIZE} bytes"},
        )
    return await call_next(request)


@app.exception_handler(ProviderError)
async def provider_exception_handler(request: Request, exc: ProviderError):
    """Render provider failures as {"error": message} with their status code."""
    app_logger.warning(
        "Provider error",
        extra={"category": exc.category.value, "provider": exc.provider, "path": request.url.path},
    )
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        headers = {"Retry-After": str(int(exc.retry_after))}
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies: first problem as the message, all problems as detail."""
    problems = [
        {"field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    message = f"Invalid request body: {problems[0]['field']}: {problems[0]['msg']}" if problems else "Invalid request body"
    return JSONResponse(status_code=422, content={"error": message, "detail": problems})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Unexpected failures; the error id is the request id so logs can be found."""
    error_id = request_id_var.get() or getattr(request.state, "request_id", None) or "unknown"
    app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={"error": f"Internal server error. Error ID: {error_id}"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT, timeout_keep_alive=30)
