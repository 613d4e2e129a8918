"""storyloom.integrations: clients for the third-party APIs stories depend on."""

from storyloom.integrations.images import (
    GeneratedImage,
    GeneratedImages,
    GenerateImageRequest,
    ImageGenerationClient,
    ImageGenerationSettings,
)

__all__ = [
    "GeneratedImage",
    "GeneratedImages",
    "GenerateImageRequest",
    "ImageGenerationClient",
    "ImageGenerationSettings",
]
