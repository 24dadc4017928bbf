"""FastAPI application factory for the relay service."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from bizreply.core.config import AppSettings
from bizreply.core.errors import CoreError
from bizreply.core.http import HealthResponse
from bizreply.core.logging import configure_logging
from bizreply.core.middleware import RequestContextMiddleware, metrics_response
from bizreply.core.telemetry import init_tracing, instrument_fastapi_app

from .dependencies import (
    get_catalog_client,
    get_completion_provider,
    get_graph_client,
    get_settings,
)
from .routers import businesses, conversations, integrations, products, webhooks

logger = logging.getLogger(__name__)

SERVICE_NAME = "bizreply"

SettingsDep = Annotated[AppSettings, Depends(get_settings)]


def create_app(settings: AppSettings | None = None, *, validate: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Startup fails with ``ConfigurationError`` when required settings are
    missing, unless ``validate`` is False. An explicit ``settings`` object is
    also what route dependencies receive.
    """

    resolved = settings or get_settings()
    configure_logging(resolved.log_level)
    if validate:
        resolved.validate_required()
    init_tracing(SERVICE_NAME, resolved.telemetry)

    app = FastAPI(title="BizReply Relay", version=resolved.app_version)
    if settings is not None:
        app.dependency_overrides[get_settings] = lambda: settings
    instrument_fastapi_app(app)
    app.add_middleware(RequestContextMiddleware, service_name=SERVICE_NAME)

    @app.exception_handler(CoreError)
    async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request failed",
                extra={"path": request.url.path, "code": exc.code, "error": exc.message},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            media_type="application/problem+json",
        )

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    def health(_: SettingsDep) -> HealthResponse:
        return HealthResponse()

    @app.get("/metrics")
    async def metrics() -> Response:
        return metrics_response()

    app.include_router(webhooks.router)
    app.include_router(businesses.router)
    app.include_router(conversations.router)
    app.include_router(products.router)
    app.include_router(integrations.router)

    @app.on_event("shutdown")
    async def shutdown_clients() -> None:
        await get_graph_client().close()
        await get_catalog_client().close()
        provider = get_completion_provider()
        if provider is not None:
            await provider.close()

    return app
