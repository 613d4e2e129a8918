"""Shared base settings for storyloom components.

Every component that reads configuration from the environment (the
resilience layer, upstream clients, the HTTP app) subclasses
``StoryloomBaseSettings`` and sets its own ``env_prefix``.

Examples:
    >>> from storyloom.core.settings import StoryloomBaseSettings
    >>> class VideoSettings(StoryloomBaseSettings):
    ...     model_config = SettingsConfigDict(env_prefix="KLING_")
    ...     api_key: str | None = None
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class StoryloomBaseSettings(BaseSettings):
    """Common settings behaviour: ``.env`` support, unknown keys ignored."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"


__all__ = ["StoryloomBaseSettings", "SettingsConfigDict"]
