"""
FastAPI application factory.

``create_app()`` wires settings, the upstream clients, routers and error
handlers into a single ``FastAPI`` instance. Each app owns its own
``UpstreamGateway`` per upstream, so two apps (or two tests) never share
admission slots.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from storyloom.api.deps import get_settings
from storyloom.api.errors import register_error_handlers
from storyloom.api.routers import health, images
from storyloom.api.settings import StoryloomAPISettings
from storyloom.core.logging import configure_logging, get_logger
from storyloom.execution.gateway import UpstreamGateway
from storyloom.integrations.images import ImageGenerationClient, ImageGenerationSettings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup / shutdown hooks."""
    log = get_logger("storyloom.api")
    log.info("storyloom API starting", version=app.version, **app.state.image_client.gateway.snapshot())
    yield
    await app.state.image_client.aclose()
    log.info("storyloom API shutting down")


def create_app(
    *,
    settings: StoryloomAPISettings | None = None,
    image_settings: ImageGenerationSettings | None = None,
    image_gateway: UpstreamGateway | None = None,
    http_client: httpx.AsyncClient | None = None,
    configure_logs: bool = False,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : StoryloomAPISettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    image_settings : ImageGenerationSettings | None
        Image upstream configuration; read from the environment when None.
    image_gateway : UpstreamGateway | None
        Pre-built gateway (tests use small timeouts/limits).
    http_client : httpx.AsyncClient | None
        Transport for upstream calls (tests pass a MockTransport client).
    configure_logs : bool
        Configure structlog from ``settings`` (the CLI entry point does).
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(level=settings.log_level, json_format=settings.json_logs)

    image_settings = image_settings or ImageGenerationSettings()
    image_client = ImageGenerationClient(
        image_settings,
        gateway=image_gateway,
        http_client=http_client,
    )

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings
    app.state.image_client = image_client

    register_error_handlers(app)
    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(images.router, prefix=settings.api_prefix)
    return app


__all__ = ["create_app", "lifespan"]
