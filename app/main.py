import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.admin_route import admin_router
from app.api.v1.auth_route import auth_router, dev_router
from app.api.v1.user_route import users_router
from app.core.config import Settings, settings
from app.core.logging import configure_logging
from app.core.oauth import build_oauth_clients
from app.db.session import close_db, init_db


logger = logging.getLogger(__name__)

PROVIDER_HTTP_TIMEOUT = 10.0


def error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    """Uniform error body used by every handler."""
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "statusCode": status_code},
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Initializes database tables and the shared HTTP client used for
    provider profile calls on startup; closes both on shutdown.
    """
    await init_db()
    app.state.http_client = httpx.AsyncClient(timeout=PROVIDER_HTTP_TIMEOUT)
    try:
        yield
    finally:
        await app.state.http_client.aclose()
        await close_db()


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Sets up CORS, uniform error handling, the OAuth provider registry and
    routing for authentication, user and admin endpoints.

    Args:
        app_settings: Settings to build the app from; the process-wide
            settings by default.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    app_settings = app_settings or settings
    configure_logging(app_settings.log_level)

    app = FastAPI(
        title="User Management API",
        description="User CRUD with OAuth2 login, JWT sessions and role-based access control",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.settings = app_settings

    # Built once, read-only for the lifetime of the app
    app.state.oauth_clients = build_oauth_clients(app_settings)
    app.state.http_client = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if not app_settings.is_production:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.perf_counter()
            logger.info(f"Incoming request {request.method} {request.url.path}")
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"Request completed {request.method} {request.url.path} "
                f"status={response.status_code} time={elapsed_ms:.1f}ms"
            )
            return response

    register_exception_handlers(app)

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    if not app_settings.is_production:
        app.include_router(dev_router, prefix="/auth", tags=["auth"])
    app.include_router(users_router, prefix="/api/users", tags=["users"])
    app.include_router(admin_router, prefix="/api/admin/users", tags=["admin"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """
        Health check endpoint for load balancers and monitoring.

        Returns:
            dict: Health status response.
        """
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app
