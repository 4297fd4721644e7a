"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from taskberry.api import router as api_router
from taskberry.config import get_settings
from taskberry.db.session import STORE_FAILURES, close_db, init_db
from taskberry.exceptions import StoreUnavailableError, TaskBerryError, ValidationError
from taskberry.logging_config import configure_logging
from taskberry.middleware.logging import LoggingMiddleware
from taskberry.middleware.request_id import RequestIDMiddleware

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    logger.info("app_starting", app=settings.app_name, version=settings.app_version)
    await init_db()
    logger.info("database_connected")

    yield

    logger.info("app_stopping")
    await close_db()


def _error_body(exc: TaskBerryError) -> dict:
    body: dict = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError):
        body["errors"] = [{"field": e.field, "message": e.message} for e in exc.errors]
    return body


async def taskberry_error_handler(request: Request, exc: TaskBerryError) -> ORJSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.error("request_error", code=exc.code, error=exc.message)
    return ORJSONResponse(status_code=exc.status_code, content=_error_body(exc), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    """Render pydantic request errors in the same shape as domain validation errors."""
    errors = []
    for error in exc.errors():
        # Drop the leading "body"/"query"/"path" segment
        loc = [str(part) for part in error.get("loc", ())[1:]]
        errors.append({"field": ".".join(loc) or "body", "message": error.get("msg", "Invalid value")})
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation error", "code": "VALIDATION_ERROR", "errors": errors},
    )


async def store_failure_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error("store_unavailable", error=str(exc))
    return await taskberry_error_handler(request, StoreUnavailableError())


async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception("unhandled_error", error=str(exc), error_type=type(exc).__name__)
    content = {"detail": "Server error", "code": "INTERNAL_ERROR"}
    if settings.environment == "development":
        content["error"] = str(exc)
    return ORJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Task tracking for a manager, supervisor and member hierarchy",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.add_exception_handler(TaskBerryError, taskberry_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    for exc_class in STORE_FAILURES:
        app.add_exception_handler(exc_class, store_failure_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Add middleware (order matters - last added is first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    # Trust proxy headers (X-Forwarded-Proto, X-Forwarded-For) from nginx
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    app.include_router(api_router, prefix=settings.api_prefix)

    return app


app = create_app()
