"""OpenAI image generation upstream, called through the resilience layer.

Story pages are illustrated with ``gpt-image-1``. A single generation can
take well over a minute, the endpoint rate-limits aggressively, and it
occasionally drops connections, so every call goes through an
:class:`~storyloom.execution.gateway.UpstreamGateway`.

Request flow::

    ImageGenerationClient.generate(GenerateImageRequest)
      ├── credentials present?            no ─► MissingConfigError
      ├── gateway.call(POST /images/generations)
      │     ├── non-2xx ─► UpstreamError(status, {error: {message}})
      │     └── 2xx     ─► JSON body
      └── body.data non-empty list?       no ─► UpstreamError (not retried)
                                          yes ─► GeneratedImages

Environment:
    OPENAI_API_KEY, OPENAI_ORG_ID, OPENAI_BASE_URL
    OPENAI_IMAGE_TIMEOUT_MS, OPENAI_IMAGE_MAX_ATTEMPTS (or legacy
    OPENAI_IMAGE_MAX_RETRIES, counted after the first try), OPENAI_IMAGE_BACKOFF_MS,
    OPENAI_IMAGE_MAX_CONCURRENT
"""

from __future__ import annotations

import functools
from typing import Any, Literal

import httpx
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from storyloom.core.errors import MissingConfigError, UpstreamError, is_retryable_status
from storyloom.core.logging import LogContext, get_logger
from storyloom.core.settings import SettingsConfigDict
from storyloom.execution.gateway import UpstreamGateway
from storyloom.execution.settings import ResilienceSettings

logger = get_logger(__name__)

UPSTREAM_NAME = "openai.images"

ImageSize = Literal["1024x1024", "1536x1024", "1024x1536", "auto"]
ImageQuality = Literal["low", "medium", "high"]


class ImageGenerationSettings(ResilienceSettings):
    """Credentials, endpoint and resilience knobs for image generation."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_IMAGE_", populate_by_name=True)

    api_key: str | None = Field(default=None, validation_alias=AliasChoices("OPENAI_API_KEY"))
    org_id: str | None = Field(default=None, validation_alias=AliasChoices("OPENAI_ORG_ID"))
    base_url: str = Field(
        default="https://api.openai.com/v1",
        validation_alias=AliasChoices("OPENAI_BASE_URL"),
    )
    max_attempts: int = Field(
        default=5,
        validation_alias=AliasChoices("OPENAI_IMAGE_MAX_ATTEMPTS"),
    )
    base_backoff_ms: float = Field(
        default=1500.0,
        validation_alias=AliasChoices("OPENAI_IMAGE_BACKOFF_MS", "OPENAI_IMAGE_BASE_BACKOFF_MS"),
    )
    max_retries: int | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_IMAGE_MAX_RETRIES"),
        exclude=True,
        description="Legacy: retries after the first attempt",
    )

    @model_validator(mode="after")
    def _legacy_max_retries(self) -> ImageGenerationSettings:
        # MAX_RETRIES=N meant N retries after the first try; MAX_ATTEMPTS wins when both are set
        if self.max_retries is not None and "max_attempts" not in self.model_fields_set:
            self.max_attempts = self.max_retries + 1
        return self

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/images/generations"


# ── Schemas ──────────────────────────────────────────────────────────


class GenerateImageRequest(BaseModel):
    """Parameters for one ``gpt-image-1`` generation."""

    prompt: str = Field(..., min_length=1, description="Illustration prompt")
    model: str = Field(default="gpt-image-1")
    quality: ImageQuality = Field(default="high")
    moderation: Literal["low", "auto"] = Field(default="low")
    output_compression: int = Field(default=0, ge=0, le=100)
    size: ImageSize = Field(default="1536x1024", description="Landscape by default")
    n: int = Field(default=1, ge=1, le=10, description="Number of variations")

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Prompt is required")
        return value

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()


class GeneratedImage(BaseModel):
    b64_json: str | None = None
    revised_prompt: str | None = None


class GeneratedImages(BaseModel):
    """Images returned by one generation call."""

    images: list[GeneratedImage]
    attempts_made: int = Field(default=1, exclude=True)


# ── Client ───────────────────────────────────────────────────────────


def _error_details(response: httpx.Response) -> tuple[str, Any]:
    """Pull ``error.message`` out of an OpenAI error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return "Unknown API error", None
    message = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
    return message or "Unknown API error", body


class ImageGenerationClient:
    """Generates story illustrations via the OpenAI images API.

    Parameters
    ----------
    settings : ImageGenerationSettings
        Credentials, endpoint and resilience configuration.
    gateway : UpstreamGateway | None
        Shared gateway for this upstream; built from ``settings`` when None.
    http_client : httpx.AsyncClient | None
        Transport; the client owns (and closes) one it creates itself.
    """

    def __init__(
        self,
        settings: ImageGenerationSettings,
        gateway: UpstreamGateway | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._gateway = gateway or UpstreamGateway.from_settings(settings, name=UPSTREAM_NAME)
        self._owns_http = http_client is None
        # The per-attempt deadline lives in the invoker, not in httpx.
        self._http = http_client or httpx.AsyncClient(timeout=None)

    @property
    def gateway(self) -> UpstreamGateway:
        return self._gateway

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        if not self._settings.api_key:
            raise MissingConfigError("OPENAI_API_KEY", "API key configuration error")
        if not self._settings.org_id:
            raise MissingConfigError("OPENAI_ORG_ID", "Organization ID configuration error")
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "OpenAI-Organization": self._settings.org_id,
            "Content-Type": "application/json",
        }

    async def _post(self, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        response = await self._http.post(self._settings.endpoint, json=payload, headers=headers)
        if response.is_error:
            message, details = _error_details(response)
            raise UpstreamError(
                message,
                status_code=response.status_code,
                details=details,
                retryable=is_retryable_status(response.status_code),
            ).with_context(upstream=UPSTREAM_NAME, url=self._settings.endpoint)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                "Invalid response from OpenAI API",
                status_code=response.status_code,
                retryable=False,
                cause=exc,
            ) from exc

    async def generate(self, request: GenerateImageRequest) -> GeneratedImages:
        """Generate ``request.n`` images for ``request.prompt``.

        Raises:
            MissingConfigError: API key or organisation id not configured
            InvocationFailed: Upstream failed after retries, or the response
                was unusable
        """
        headers = self._headers()
        payload = request.to_payload()

        logger.info(
            "images.generate.start",
            endpoint=self._settings.endpoint,
            model=request.model,
            quality=request.quality,
            size=request.size,
            n=request.n,
            prompt_preview=request.prompt[:50],
        )

        async with LogContext(upstream=UPSTREAM_NAME):
            result = await self._gateway.call(
                functools.partial(self._fetch_images, payload, headers), label=UPSTREAM_NAME
            )

        logger.info(
            "images.generate.complete",
            images=len(result.value),
            attempts_made=result.attempts_made,
            elapsed_ms=round(result.elapsed_ms, 1),
        )
        return GeneratedImages(images=result.value, attempts_made=result.attempts_made)

    async def _fetch_images(self, payload: dict[str, Any], headers: dict[str, str]) -> list[GeneratedImage]:
        data = await self._post(payload, headers)
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise UpstreamError("Invalid response from OpenAI API", details=data, retryable=False)
        if not items:
            raise UpstreamError("No images in response", details=data, retryable=False)
        return [
            GeneratedImage(
                b64_json=item.get("b64_json"),
                revised_prompt=item.get("revised_prompt") or None,
            )
            for item in items
        ]


__all__ = [
    "GenerateImageRequest",
    "GeneratedImage",
    "GeneratedImages",
    "ImageGenerationClient",
    "ImageGenerationSettings",
    "UPSTREAM_NAME",
]
