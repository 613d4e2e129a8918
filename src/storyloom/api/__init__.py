"""storyloom.api: FastAPI surface over the upstream clients."""

from storyloom.api.app import create_app

__all__ = ["create_app"]
