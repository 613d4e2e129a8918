"""
API-specific settings.

Extends :class:`~storyloom.core.settings.StoryloomBaseSettings` with the
parameters that govern the REST transport. Values can be overridden via
environment variables prefixed with ``STORYLOOM_``.
"""

from __future__ import annotations

from pydantic import Field

from storyloom.core.settings import SettingsConfigDict, StoryloomBaseSettings


class StoryloomAPISettings(StoryloomBaseSettings):
    """Settings for the storyloom REST API.

    Order of precedence (highest → lowest):
        1. Environment variables (``STORYLOOM_API_PREFIX``, etc.)
        2. ``.env`` file
        3. Defaults below
    """

    model_config = SettingsConfigDict(env_prefix="STORYLOOM_")

    api_prefix: str = Field(default="/api", description="URL prefix for all endpoints")
    api_title: str = Field(default="storyloom API", description="OpenAPI title")
    api_version: str = Field(default="0.1.0", description="OpenAPI version string")
    json_logs: bool | None = Field(default=None, description="Force JSON logs; auto-detect when unset")
