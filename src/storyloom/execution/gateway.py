"""Upstream Gateway: the Bounded Remote Invocation Layer for one upstream.

Composes the AdmissionController and the ResilientInvoker::

    submit(request)
      ├── QUEUED     ─ await admission slot (FIFO)
      ├── ADMITTED   ─ invoker.execute(request)  (attempts + backoff)
      └── RESOLVED   ─ slot released, result returned or InvocationFailed raised

Construct one gateway per upstream and pass it to whatever needs it; there
is no module-level instance.

Example::

    gateway = UpstreamGateway.from_settings(ImageGenerationSettings(), name="openai.images")
    result = await gateway.call(functools.partial(client.post, url, json=payload), label="openai.images")
    response = result.value
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from storyloom.core.logging import get_logger
from storyloom.execution.admission import AdmissionController
from storyloom.execution.invoker import ResilientInvoker
from storyloom.execution.models import InvocationRequest, InvocationResult, InvocationState
from storyloom.execution.settings import ResilienceSettings

T = TypeVar("T")

logger = get_logger(__name__)


class UpstreamGateway:
    """Admission-controlled, deadline-bounded, retrying calls to one upstream."""

    def __init__(self, admission: AdmissionController, invoker: ResilientInvoker) -> None:
        self._admission = admission
        self._invoker = invoker

    @classmethod
    def from_settings(cls, settings: ResilienceSettings, name: str = "upstream") -> UpstreamGateway:
        return cls(settings.build_admission(name), settings.build_invoker())

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    @property
    def invoker(self) -> ResilientInvoker:
        return self._invoker

    async def submit(self, request: InvocationRequest[T]) -> InvocationResult[T]:
        """Queue ``request`` for a slot and run it to a terminal result.

        Raises:
            InvocationFailed: Terminal failure after retries (or non-retryable).
            asyncio.CancelledError: Cancelled while queued or in flight.
            RuntimeError: The request was already submitted.
        """
        request.claim()
        try:
            await self._admission.acquire()
        except asyncio.CancelledError:
            request.advance(InvocationState.RESOLVED)
            logger.info(
                "invocation.cancelled_while_queued",
                label=request.label,
                request_id=request.request_id,
            )
            raise

        try:
            request.advance(InvocationState.ADMITTED)
            return await self._invoker.execute(request)
        finally:
            self._admission.release()

    async def call(
        self,
        operation: Callable[[], Awaitable[T] | T],
        label: str = "upstream",
    ) -> InvocationResult[T]:
        """Shorthand for ``submit(InvocationRequest(operation, label))``."""
        return await self.submit(InvocationRequest(operation=operation, label=label))

    def snapshot(self) -> dict[str, Any]:
        snap = self._admission.snapshot()
        snap.update(
            timeout_ms=self._invoker.timeout_ms,
            max_attempts=self._invoker.policy.max_attempts,
            base_backoff_ms=self._invoker.policy.base_backoff_ms,
        )
        return snap


__all__ = ["UpstreamGateway"]
