"""
FastAPI application for teamhub.

Run with any ASGI server, e.g. `uvicorn teamhub.api.app:app`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from teamhub import __version__
from teamhub.api import billing, teams, users
from teamhub.api.dependencies import AppServices, build_services
from teamhub.auth import routes as auth_routes
from teamhub.auth.capabilities import check_rights_tables
from teamhub.config import Settings, get_settings
from teamhub.core.errors import ExternalServiceError, PropagationError, TeamHubError
from teamhub.integrations.sentry import capture_exception, init_sentry
from teamhub.services.billing import load_plans

logger = logging.getLogger(__name__)

API_PREFIX = "/v1"


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup checks and cleanup."""
    services: AppServices = app.state.services
    settings = services.settings

    logging.basicConfig(level=settings.log_level.upper())
    check_rights_tables()

    if init_sentry(settings):
        logger.info("Sentry error tracking enabled")

    try:
        if settings.billing_sync_plans:
            await services.catalog.sync_plans(load_plans())
        else:
            await services.catalog.refresh()
    except ExternalServiceError as e:
        # Retried lazily on the first catalog read
        logger.warning(f"Product catalog not loaded at startup: {e.message}")

    logger.info(f"teamhub API starting in {settings.environment} mode")

    yield

    await services.gateway.aclose()
    logger.info("teamhub API shutting down")


# =============================================================================
# Error handlers
# =============================================================================


def _error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": status_code, "message": message, **extra},
    )


async def handle_teamhub_error(request: Request, exc: TeamHubError) -> JSONResponse:
    extra = {}
    if isinstance(exc, PropagationError):
        extra["failed_user_ids"] = exc.failed_user_ids
    if exc.status_code >= 500:
        capture_exception(exc, path=request.url.path)
    return _error_response(exc.status_code, exc.message, **extra)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return _error_response(400, "; ".join(messages) or "Invalid request")


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    capture_exception(exc, path=request.url.path)
    return _error_response(500, "Internal server error")


# =============================================================================
# App Setup
# =============================================================================


def create_app(services: AppServices | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the application. Tests pass their own service graph."""
    settings = services.settings if services else (settings or get_settings())

    app = FastAPI(
        title="teamhub API",
        description="Accounts, teams and subscription billing",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TeamHubError, handle_teamhub_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    for router in (auth_routes.router, users.router, teams.router, billing.router):
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "teamhub-api"}

    return app


app = create_app()
