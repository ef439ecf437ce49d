"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from licencias.api.v1.endpoints import health
from licencias.api.v1.router import api_router
from licencias.core.config import settings
from licencias.core.database import DatabaseClient
from licencias.core.exceptions import (
    AppError,
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    DatabaseError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    StorageUnavailableError,
    ValidationError,
)
from licencias.core.jwks import JWKSService
from licencias.core.jwt import JWTVerifier
from licencias.utils.logging import get_logger
from licencias.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)

# Most specific first; the first isinstance match wins
ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Validation Error"),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED, "Authentication Required"),
    (ForbiddenError, status.HTTP_403_FORBIDDEN, "Forbidden"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (InvalidTransitionError, status.HTTP_409_CONFLICT, "Invalid Transition"),
    (InvalidStateError, status.HTTP_409_CONFLICT, "Invalid State"),
    (ConflictError, status.HTTP_409_CONFLICT, "Conflict"),
    (StorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE, "Storage Unavailable"),
    (StorageError, status.HTTP_502_BAD_GATEWAY, "Storage Error"),
    (DatabaseError, status.HTTP_503_SERVICE_UNAVAILABLE, "Database Unavailable"),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Configuration Error"),
)

RETRY_AFTER_SECONDS = "5"


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the process-wide resources and release them on shutdown."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )
    if not settings.supabase_url:
        LOGGER.error("SUPABASE_URL is missing")
    if not settings.supabase_jwt_secret:
        LOGGER.warning("SUPABASE_JWT_SECRET is missing, only asymmetric tokens can be verified")

    db = DatabaseClient.from_settings(settings.db)
    http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    jwks_service = JWKSService(
        supabase_url=settings.supabase_url,
        cache_ttl=settings.supabase.jwks_cache_ttl,
        timeout=settings.http_timeout,
    )

    app.state.db = db
    app.state.http_client = http_client
    app.state.jwt_verifier = JWTVerifier(
        supabase_url=settings.supabase_url,
        jwt_secret=settings.supabase_jwt_secret,
        jwks_service=jwks_service,
        audience=settings.supabase.jwt_audience,
    )

    if settings.db.auto_migrate:
        try:
            await asyncio.wait_for(db.create_tables(), timeout=settings.db_init_timeout)
        except asyncio.TimeoutError:
            LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
        except Exception as e:
            LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down application")
    await http_client.aclose()
    try:
        await db.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    """Translate a typed application error into a problem details response."""
    status_code, title = status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Error"
    for error_type, code, error_title in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code, title = code, error_title
            break

    retryable = isinstance(exc, (StorageUnavailableError, DatabaseError))
    if status_code >= 500:
        LOGGER.error(
            f"{title}: {exc.message}",
            exc_info=exc.original_error is not None,
            extra={"path": request.url.path},
        )
    else:
        LOGGER.info(f"{title}: {exc.message}", extra={"path": request.url.path})

    detail = exc.message
    if isinstance(exc, ForbiddenError):
        detail = "You are not allowed to perform this action"
    elif isinstance(exc, DatabaseError):
        detail = "The database is temporarily unavailable, try again"

    error_detail = create_error_detail(
        title=title,
        status=status_code,
        detail=detail,
        request=request,
        retryable=retryable,
    )
    headers = {}
    if retryable:
        headers["Retry-After"] = RETRY_AFTER_SECONDS
    if isinstance(exc, AuthenticationError):
        headers["WWW-Authenticate"] = "Bearer"
    return JSONResponse(status_code=status_code, content=error_detail.model_dump(mode="json"), headers=headers)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters are reported as 400, like domain validation."""
    fields = sorted({".".join(str(part) for part in error["loc"] if part != "body") for error in exc.errors()})
    LOGGER.info("Request validation failed", extra={"path": request.url.path, "fields": fields})
    error_detail = create_error_detail(
        title="Validation Error",
        status=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid or missing fields: {', '.join(fields)}",
        request=request,
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_detail.model_dump(mode="json"))


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Leave request lifecycle: submission, evidence and review",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
        request.state.correlation_id = correlation_id
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)

    app.include_router(api_router, prefix=settings.api_v1_prefix)
    app.include_router(health.router, prefix="/health", tags=["Health"])

    @app.get(
        "/",
        response_model=RootResponse,
        tags=["Root"],
        summary="Root endpoint",
        operation_id="get_public_root_metadata",
    )
    async def root() -> RootResponse:
        return RootResponse(
            message="Server is running",
            version=settings.app_version,
            docs="/docs",
            health="/health",
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "licencias.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
