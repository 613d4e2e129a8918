"""
FastAPI dependency injection: cached settings and app-scoped clients.

Usage in routers::

    from storyloom.api.deps import ImageClient

    @router.post("/images/generate")
    async def generate(body: GenerateImageRequest, client: ImageClient):
        ...
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from storyloom.api.settings import StoryloomAPISettings
from storyloom.execution.gateway import UpstreamGateway
from storyloom.integrations.images import ImageGenerationClient


@lru_cache(maxsize=1)
def get_settings() -> StoryloomAPISettings:
    """Cached settings: loaded once per process."""
    return StoryloomAPISettings()


def get_image_client(request: Request) -> ImageGenerationClient:
    """The image client built by ``create_app`` for this application."""
    return request.app.state.image_client


def get_image_gateway(request: Request) -> UpstreamGateway:
    return request.app.state.image_client.gateway


ImageClient = Annotated[ImageGenerationClient, Depends(get_image_client)]
ImageGateway = Annotated[UpstreamGateway, Depends(get_image_gateway)]
