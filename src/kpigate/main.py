"""
Main FastAPI application entry point.

This module sets up the FastAPI app with all middleware, routes, and lifecycle events.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.kpigate.api import auth_router, data_router, healthz_router, metrics_router
from src.kpigate.config import Settings, get_settings
from src.kpigate.core.auth import AuthGate
from src.kpigate.core.cors import OriginGuard, OriginGuardMiddleware
from src.kpigate.core.database import Database
from src.kpigate.core.exceptions import KPIGateException
from src.kpigate.core.metrics import MetricsCollector
from src.kpigate.core.rate_limit import FixedWindowRateLimiter, InMemoryRateLimitStore
from src.kpigate.core.router import RequestRouter
from src.kpigate.core.storage import StorageGateway


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    # SQL echo goes through stdlib logging; keep it out of INFO output
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Builds the storage, auth and routing components and tears down the
        database engine on shutdown.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting KPIGate service", version=app.version)

        metrics_collector = MetricsCollector()
        app.state.metrics = metrics_collector

        database = Database(settings.database)
        app.state.database = database
        if settings.database.create_tables:
            await database.create_tables()

        storage = StorageGateway(database, metrics=metrics_collector)
        app.state.storage = storage

        rate_limiter = FixedWindowRateLimiter(InMemoryRateLimitStore())
        app.state.auth_gate = AuthGate(
            storage=storage,
            rate_limiter=rate_limiter,
            settings=settings.security,
            metrics=metrics_collector,
        )
        app.state.request_router = RequestRouter(storage)

        try:
            logger.info("KPIGate service started successfully")
            yield
        finally:
            logger.info("Shutting down KPIGate service")
            await database.close()
            logger.info("KPIGate service shutdown complete")

    return lifespan


async def kpigate_exception_handler(request: Request, exc: KPIGateException) -> JSONResponse:
    """Handle custom KPIGate exceptions."""
    logger = structlog.get_logger(__name__)
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "KPIGate exception occurred",
        error=exc.error_code,
        message=str(exc),
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )

    headers = {}

    # Add Retry-After header for rate limit errors
    if exc.status_code == 429 and "retry_after" in exc.details:
        headers["Retry-After"] = str(exc.details["retry_after"])

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": str(exc),
            "details": exc.details,
            **exc.extra,
        },
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map schema errors on request bodies to 400 malformed_input."""
    logger = structlog.get_logger(__name__)
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    logger.info("Malformed request body", path=request.url.path, errors=errors)

    return JSONResponse(
        status_code=400,
        content={
            "error": "malformed_input",
            "message": "Malformed request body",
            "details": {"errors": errors},
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Unexpected exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "Internal server error",
        },
    )


async def record_request_metrics(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Time each request and record it against its route template."""
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        metrics: Optional[MetricsCollector] = getattr(request.app.state, "metrics", None)
        if metrics is not None:
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")
            metrics.record_request(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
                duration_seconds=time.perf_counter() - start,
            )
    return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function ensures all configuration is applied
    whether running via FastAPI CLI or direct execution.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(settings.log_level)

    app = FastAPI(
        title="KPIGate",
        description="Authenticated KPI dashboard API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(settings),
    )
    app.state.settings = settings

    app.middleware("http")(record_request_metrics)
    # Added last so it runs first: preflight never reaches auth
    app.add_middleware(
        OriginGuardMiddleware,
        guard=OriginGuard.from_settings(settings.cors),
        error_handler=general_exception_handler,
    )

    app.add_exception_handler(KPIGateException, kpigate_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(auth_router, prefix="/v1", tags=["auth"])
    app.include_router(data_router, prefix="/v1", tags=["data"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "KPIGate",
            "version": app.version,
            "description": "Authenticated KPI dashboard API",
            "docs": "/docs",
        }

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.kpigate.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )
