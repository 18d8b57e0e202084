# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the campaign sync API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.core.errors import ErrorCode, ServiceError
from src.domains.permissions.checker import AllowAllPermissionChecker, PermissionChecker
from src.infrastructure.background import setup_dramatiq, shutdown_dramatiq
from src.infrastructure.database.connection import (
    DatabaseError,
    close_database,
    create_tables,
    init_database,
)
from src.infrastructure.events import start_event_bridge, stop_event_bridge
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FAILED_PRECONDITION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes and cleans up:
    - Logging
    - Database connections
    - Dramatiq broker
    - Change feed bridge

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting campaign sync API (environment: %s, debug: %s)",
        settings.environment,
        settings.debug,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    await init_database(settings)
    if settings.db.is_sqlite or settings.is_development:
        await create_tables()
    logger.info("Database connection initialized")

    # Setup Dramatiq broker
    try:
        setup_dramatiq()
        logger.info("Dramatiq broker initialized")
    except Exception as e:
        logger.warning("Failed to setup Dramatiq: %s", str(e))

    # Start change feed bridge
    try:
        await start_event_bridge()
        logger.info("Event bridge started")
    except Exception as e:
        logger.warning("Failed to start event bridge: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    try:
        await stop_event_bridge()
        logger.info("Event bridge stopped")
    except Exception as e:
        logger.warning("Error stopping event bridge: %s", str(e))

    try:
        shutdown_dramatiq()
        logger.info("Dramatiq broker shutdown")
    except Exception as e:
        logger.warning("Error shutting down Dramatiq: %s", str(e))

    await close_database()
    logger.info("Shutting down campaign sync API")


def _error_body(code: ErrorCode, message: str) -> dict[str, str]:
    return {"code": code.value, "message": message}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map a domain error to its HTTP status."""
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=_error_body(exc.code, exc.message))


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    """Map a store failure to 500."""
    logger.error("%s %s database error: %s", request.method, request.url.path, str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(ErrorCode.INTERNAL, "Database operation failed"),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as invalid arguments."""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in errors
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(ErrorCode.INVALID_ARGUMENT, message or "Invalid request"),
    )


def create_app(permission_checker: PermissionChecker | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        permission_checker: Capability checker for administrator calls.
            Defaults to allowing everything, for deployments where the
            gateway enforces permissions.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api.title,
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # State
    # =========================================================================
    if permission_checker is None:
        logger.warning("No permission checker configured; all administrator calls are allowed")
        permission_checker = AllowAllPermissionChecker()
    app.state.permission_checker = permission_checker

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router, prefix=settings.api.prefix)

    return app
