"""Environment-driven configuration for the upstream resilience layer.

All values are optional; defaults match the image-generation upstream:

    timeout_ms        120000   per-attempt deadline
    max_attempts      5        total attempts including the first
    base_backoff_ms   1500     linear backoff unit
    max_concurrent    5        admission ceiling

Subclasses pick the environment prefix, e.g. ``OPENAI_IMAGE_`` gives
``OPENAI_IMAGE_TIMEOUT_MS``. Values are validated when the policy, invoker
and controller are built from them, so a bad value fails at startup with
``InvalidConfigError`` rather than on the first request.
"""

from __future__ import annotations

from pydantic import Field

from storyloom.core.settings import SettingsConfigDict, StoryloomBaseSettings
from storyloom.execution.admission import DEFAULT_MAX_CONCURRENT, AdmissionController
from storyloom.execution.invoker import DEFAULT_TIMEOUT_MS, ResilientInvoker
from storyloom.execution.retry import DEFAULT_BASE_BACKOFF_MS, DEFAULT_MAX_ATTEMPTS, RetryPolicy


class ResilienceSettings(StoryloomBaseSettings):
    """Timeout, retry and admission knobs for one upstream."""

    model_config = SettingsConfigDict(env_prefix="STORYLOOM_UPSTREAM_")

    timeout_ms: float = Field(default=DEFAULT_TIMEOUT_MS, description="Per-attempt deadline (ms)")
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, description="Total attempts including the first")
    base_backoff_ms: float = Field(default=DEFAULT_BASE_BACKOFF_MS, description="Linear backoff unit (ms)")
    max_concurrent: int = Field(default=DEFAULT_MAX_CONCURRENT, description="Concurrent calls admitted")

    def build_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, base_backoff_ms=self.base_backoff_ms)

    def build_invoker(self) -> ResilientInvoker:
        return ResilientInvoker(self.build_policy(), timeout_ms=self.timeout_ms)

    def build_admission(self, name: str = "upstream") -> AdmissionController:
        return AdmissionController(self.max_concurrent, name=name)


__all__ = ["ResilienceSettings"]
