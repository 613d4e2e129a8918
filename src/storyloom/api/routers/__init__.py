"""API routers, one module per resource."""

from storyloom.api.routers import health, images

__all__ = ["health", "images"]
