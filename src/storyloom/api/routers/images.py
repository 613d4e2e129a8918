"""
Images router: story illustration generation.

Endpoints:
    POST /images/generate   Generate illustrations for a prompt

Failures of the image upstream surface as RFC 7807 problems (see
``storyloom.api.errors``); validation errors are FastAPI's usual 422.
"""

from __future__ import annotations

from fastapi import APIRouter

from storyloom.api.deps import ImageClient
from storyloom.integrations.images import GeneratedImages, GenerateImageRequest

router = APIRouter(prefix="/images", tags=["images"])


@router.post("/generate", response_model=GeneratedImages)
async def generate_images(body: GenerateImageRequest, client: ImageClient) -> GeneratedImages:
    """Generate ``n`` illustrations for ``prompt``."""
    return await client.generate(body)
