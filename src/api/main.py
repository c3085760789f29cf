"""
Upload Service API - FastAPI Application Entry Point
=====================================================
Request ingress for the service: every request gets its own correlation id,
a request-scoped Logger, and a timing record.

- X-Request-ID response header carries the id back to the client
- handlers read the request Logger from request.state.logger
- get_request_id() works anywhere downstream of the middleware
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from src.common import (
    Logger,
    Settings,
    bind_request_id,
    get_request_id,
    get_settings,
    new_logger,
    reset_request_id,
    setup_logging,
)

VERSION = "1.0.0"
REQUEST_ID_HEADER = "X-Request-ID"


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    environment: str
    request_id: str = Field(default="")


def load_settings_or_exit(log: Logger) -> Settings:
    """Settings from the environment; invalid configuration ends the process."""
    try:
        return get_settings()
    except ValidationError as e:
        log.with_component("config").fatal("config validation failed", e)


def request_logger(request: Request) -> Logger:
    """Request-scoped Logger set by the middleware, base Logger otherwise."""
    log = getattr(request.state, "logger", None)
    return log if log is not None else request.app.state.logger


def create_app(
    settings: Optional[Settings] = None,
    base_logger: Optional[Logger] = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings_or_exit(new_logger("development", "info"))
    if base_logger is None:
        base_logger = setup_logging(settings)

    server_log = base_logger.with_component("server")

    # =========================================================================
    # Application Lifespan
    # =========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown events."""
        server_log.info(
            "Starting API",
            environment=settings.environment,
            version=VERSION,
        )
        yield
        server_log.info("Shutting down API")

    app = FastAPI(
        title=settings.app_name,
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,  # Disable in prod
        redoc_url="/redoc" if not settings.is_production else None,
    )
    app.state.logger = base_logger
    app.state.settings = settings

    # =========================================================================
    # Middleware
    # =========================================================================

    @app.middleware("http")
    async def request_scope(request: Request, call_next):
        """Derive the request Logger and time the request."""
        start = time.perf_counter()
        ctx, req_log = base_logger.with_request_id()
        request_id = get_request_id(ctx)

        request.state.logger = req_log
        request.state.request_id = request_id

        # Downstream tasks copy the running context, so the id follows them
        token = bind_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        req_log.with_component("http").time_track(
            start,
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
        )
        return response

    # =========================================================================
    # Health Endpoints
    # =========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Liveness probe endpoint."""
        request_logger(request).with_component("health").debug("health check")
        return HealthResponse(
            status="healthy",
            version=VERSION,
            environment=settings.environment,
            request_id=get_request_id(),
        )

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        request_logger(request).with_component("http").log_error(
            "Unhandled exception",
            exc,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc) if not settings.is_production else "An error occurred",
                "request_id": getattr(request.state, "request_id", ""),
            },
        )

    # =========================================================================
    # Root Endpoint
    # =========================================================================

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": VERSION,
            "environment": settings.environment,
            "docs": "/docs" if not settings.is_production else "disabled",
            "endpoints": {
                "health": "/health",
            },
        }

    return app


app = create_app()
