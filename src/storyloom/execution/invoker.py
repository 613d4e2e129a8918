"""Resilient Invoker: run one InvocationRequest to a single terminal result.

WHY
───
Image generation calls take tens of seconds, time out, drop connections
and return 5xx under load. Each call needs the same treatment: a hard
per-attempt deadline, classification of what went wrong, and a bounded
number of re-attempts with backoff. The invoker is that loop.

ARCHITECTURE
────────────
::

    ResilientInvoker(policy, timeout_ms)
      └── .execute(request)
            loop:
              attempt k  ─ run_with_deadline(request.operation, timeout)
                 │
                 ├─ Success ─────────────────────► InvocationResult
                 └─ Failure(kind) ─ policy.decide(k, failure)
                       ├─ Retry(delay) ─ await sleep(delay) ─ loop
                       └─ GiveUp ───────────────► raise InvocationFailed

    Exception classification (classify_exception):
      deadline / httpx.TimeoutException / TimeoutError  → TIMEOUT
      httpx.TransportError / ConnectionError / OSError  → NETWORK
      UpstreamError / httpx.HTTPStatusError / other     → UPSTREAM
      ConfigError                                       → CONFIGURATION (fatal)

The backoff wait is an ``await``; it yields the event loop so other
admitted calls keep running. Cancelling the task running ``execute``
aborts the current attempt or backoff and makes no further attempts.

Related modules:
    retry.py      RetryPolicy (pure decision)
    timeout.py    run_with_deadline
    admission.py  AdmissionController (slots around execute)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from storyloom.core.errors import (
    ConfigError,
    InvalidConfigError,
    NetworkError,
    RateLimitError,
    StoryloomError,
    TransientError,
    UpstreamError,
    is_retryable_status,
)
from storyloom.core.errors import TimeoutError as UpstreamTimeoutError
from storyloom.core.logging import get_logger
from storyloom.execution.models import (
    Failure,
    FailureKind,
    InvocationFailed,
    InvocationRequest,
    InvocationResult,
    InvocationState,
    RetryState,
    Success,
)
from storyloom.execution.retry import GiveUp, RetryPolicy
from storyloom.execution.timeout import run_with_deadline

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 120_000.0


def classify_exception(exc: BaseException) -> Failure:
    """Map an exception raised by an attempt to a typed Failure."""
    if isinstance(exc, ConfigError):
        return Failure(FailureKind.CONFIGURATION, exc, retryable=False)
    if isinstance(exc, UpstreamTimeoutError):
        return Failure(FailureKind.TIMEOUT, exc, retryable=exc.retryable)
    if isinstance(exc, RateLimitError):
        return Failure(FailureKind.UPSTREAM, exc, retryable=exc.retryable)
    if isinstance(exc, (NetworkError, TransientError)):
        return Failure(FailureKind.NETWORK, exc, retryable=exc.retryable)
    if isinstance(exc, (UpstreamError, StoryloomError)):
        return Failure(FailureKind.UPSTREAM, exc, retryable=exc.retryable)

    if isinstance(exc, httpx.TimeoutException):
        return Failure(FailureKind.TIMEOUT, exc)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return Failure(FailureKind.UPSTREAM, exc, retryable=is_retryable_status(status))
    if isinstance(exc, httpx.TransportError):
        return Failure(FailureKind.NETWORK, exc)

    # builtin TimeoutError is an OSError subclass; check it first
    if isinstance(exc, TimeoutError):
        return Failure(FailureKind.TIMEOUT, exc)
    if isinstance(exc, (ConnectionError, OSError)):
        return Failure(FailureKind.NETWORK, exc)

    return Failure(FailureKind.UPSTREAM, exc)


class ResilientInvoker:
    """Executes InvocationRequests with a deadline per attempt and retries.

    Parameters
    ----------
    policy : RetryPolicy | None
        Decides whether to re-attempt after a failure (default policy when None).
    timeout_ms : float
        Hard per-attempt deadline in milliseconds (default 120000).
    classifier : callable
        Maps an attempt's exception to a ``Failure``.
    sleep : callable
        Awaitable used for backoff waits; ``asyncio.sleep`` by default.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        *,
        classifier: Callable[[BaseException], Failure] = classify_exception,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if timeout_ms <= 0:
            raise InvalidConfigError(
                "timeout_ms", timeout_ms, f"timeout_ms must be positive, got {timeout_ms}"
            )
        self._policy = policy or RetryPolicy()
        self._timeout_ms = float(timeout_ms)
        self._classifier = classifier
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def timeout_ms(self) -> float:
        return self._timeout_ms

    async def execute(self, request: InvocationRequest[Any]) -> InvocationResult[Any]:
        """Run ``request`` until success or retry exhaustion.

        Returns:
            InvocationResult with the value and the number of attempts made.

        Raises:
            InvocationFailed: Terminal failure (kind, message, attempts_made).
            asyncio.CancelledError: The calling task was cancelled.
        """
        if request.state is InvocationState.QUEUED:
            request.claim()
            request.advance(InvocationState.ADMITTED)
        elif request.state is not InvocationState.ADMITTED:
            raise RuntimeError(
                f"InvocationRequest {request.request_id} cannot execute from state {request.state.value}"
            )

        state = RetryState()
        try:
            while True:
                attempt = state.begin_attempt()
                request.advance(InvocationState.ATTEMPTING)
                outcome = await self._attempt(request)
                state.record(outcome)

                logger.info(
                    "invocation.attempt",
                    label=request.label,
                    request_id=request.request_id,
                    attempt=attempt,
                    outcome="success" if isinstance(outcome, Success) else outcome.kind.value,
                    elapsed_ms=round(state.elapsed_ms, 1),
                )

                if isinstance(outcome, Success):
                    request.advance(InvocationState.RESOLVED)
                    return InvocationResult(
                        value=outcome.value,
                        attempts_made=attempt,
                        elapsed_ms=state.elapsed_ms,
                        label=request.label,
                    )

                decision = self._policy.decide(attempt, outcome, state.elapsed_ms)
                if isinstance(decision, GiveUp):
                    request.advance(InvocationState.RESOLVED)
                    logger.warning(
                        "invocation.failed",
                        label=request.label,
                        request_id=request.request_id,
                        kind=outcome.kind.value,
                        reason=decision.reason,
                        attempts_made=attempt,
                        error=outcome.message,
                    )
                    raise InvocationFailed.from_failure(
                        outcome,
                        attempts_made=attempt,
                        elapsed_ms=state.elapsed_ms,
                        label=request.label,
                    )

                request.advance(InvocationState.RETRYING)
                logger.info(
                    "invocation.retry_scheduled",
                    label=request.label,
                    request_id=request.request_id,
                    attempt=attempt,
                    max_attempts=self._policy.max_attempts,
                    delay_ms=round(decision.delay_ms),
                )
                await self._sleep(decision.delay_seconds)
        except asyncio.CancelledError:
            if not request.is_resolved:
                request.advance(InvocationState.RESOLVED)
                logger.info(
                    "invocation.cancelled",
                    label=request.label,
                    request_id=request.request_id,
                    attempts_made=state.attempts,
                )
            raise

    async def _attempt(self, request: InvocationRequest[Any]) -> Success[Any] | Failure:
        try:
            value = await run_with_deadline(
                request.operation,
                self._timeout_ms / 1000.0,
                request.label,
            )
        except Exception as exc:
            return self._classifier(exc)
        return Success(value)


__all__ = ["DEFAULT_TIMEOUT_MS", "ResilientInvoker", "classify_exception"]
