"""
Shared pytest fixtures and configuration for storyloom tests.

This module provides:
- structlog reset between tests so ``capture_logs`` always intercepts
- Fast retry policies and invokers (no real backoff waits)
- A recording ``sleep`` for asserting backoff schedules
- An httpx MockTransport-backed image client

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.
"""

from collections.abc import Callable, Generator

import httpx
import pytest
import structlog

from storyloom.execution import (
    AdmissionController,
    ResilientInvoker,
    RetryPolicy,
    UpstreamGateway,
)
from storyloom.integrations.images import ImageGenerationClient, ImageGenerationSettings


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Keep structlog at its defaults so cached loggers never leak between tests."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def no_backoff_policy() -> Callable[..., RetryPolicy]:
    """Factory for policies with zero backoff and zero jitter."""

    def _make(max_attempts: int = 3) -> RetryPolicy:
        return RetryPolicy(max_attempts=max_attempts, base_backoff_ms=0, jitter_ms=0)

    return _make


@pytest.fixture
def fast_invoker(no_backoff_policy) -> Callable[..., ResilientInvoker]:
    """Factory for invokers with short deadlines and no backoff."""

    def _make(max_attempts: int = 3, timeout_ms: float = 1000) -> ResilientInvoker:
        return ResilientInvoker(no_backoff_policy(max_attempts), timeout_ms=timeout_ms)

    return _make


@pytest.fixture
def image_settings() -> ImageGenerationSettings:
    return ImageGenerationSettings(
        api_key="sk-test",
        org_id="org-test",
        base_url="https://images.example.test/v1",
    )


@pytest.fixture
def image_gateway(fast_invoker) -> UpstreamGateway:
    return UpstreamGateway(AdmissionController(2, name="openai.images"), fast_invoker(max_attempts=3))


@pytest.fixture
def make_image_client(image_settings, image_gateway) -> Callable[..., ImageGenerationClient]:
    """Build an ImageGenerationClient whose transport is ``handler``."""

    def _make(handler, settings: ImageGenerationSettings | None = None) -> ImageGenerationClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ImageGenerationClient(settings or image_settings, gateway=image_gateway, http_client=http)

    return _make
