"""Data model for one logical upstream call.

ARCHITECTURE
────────────
::

    InvocationRequest          ─ what to run (operation + label), consumed once
      │  state: QUEUED → ADMITTED → ATTEMPTING ⇄ RETRYING → RESOLVED
      ▼
    AttemptOutcome             ─ Success(value) | Failure(kind, cause)
      ▼
    RetryState                 ─ attempts + timings for one call
      ▼
    InvocationResult           ─ terminal success
    InvocationFailed           ─ terminal failure (raised)

Everything here is transient and per-process; nothing is persisted.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from storyloom.core.errors import ErrorCategory, StoryloomError

T = TypeVar("T")


class FailureKind(str, Enum):
    """Why an attempt (or a whole call) failed."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    UPSTREAM = "upstream"
    CONFIGURATION = "configuration"


class InvocationState(str, Enum):
    """Lifecycle of one InvocationRequest."""

    QUEUED = "queued"
    ADMITTED = "admitted"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    RESOLVED = "resolved"


# Allowed transitions; anything else is a bug in the caller.
_TRANSITIONS: dict[InvocationState, frozenset[InvocationState]] = {
    InvocationState.QUEUED: frozenset({InvocationState.ADMITTED, InvocationState.RESOLVED}),
    InvocationState.ADMITTED: frozenset({InvocationState.ATTEMPTING, InvocationState.RESOLVED}),
    InvocationState.ATTEMPTING: frozenset({InvocationState.RETRYING, InvocationState.RESOLVED}),
    InvocationState.RETRYING: frozenset({InvocationState.ATTEMPTING, InvocationState.RESOLVED}),
    InvocationState.RESOLVED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """Raised when an InvocationRequest is moved along an illegal edge."""

    def __init__(self, current: InvocationState, target: InvocationState):
        self.current = current
        self.target = target
        super().__init__(f"Illegal invocation transition {current.value} -> {target.value}")


@dataclass
class InvocationRequest(Generic[T]):
    """A unit of schedulable work.

    Attributes:
        operation: No-argument callable performing one network call.
            Coroutine functions run on the event loop; any other callable
            runs in a worker thread under the attempt deadline, and an
            awaitable it returns is awaited within that same deadline.
        label: Human-readable name used in log records
        request_id: Unique identifier, generated when omitted
    """

    operation: Callable[[], Awaitable[T] | T]
    label: str = "upstream"
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: InvocationState = field(default=InvocationState.QUEUED, init=False)
    history: list[InvocationState] = field(default_factory=list, init=False, repr=False)
    _claimed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.history.append(self.state)

    def claim(self) -> None:
        """Mark the request as taken by an executor. Only allowed once."""
        if self._claimed:
            raise RuntimeError(f"InvocationRequest {self.request_id} was already submitted")
        self._claimed = True

    def advance(self, target: InvocationState) -> None:
        """Move to ``target``, enforcing the lifecycle."""
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, target)
        self.state = target
        self.history.append(target)

    @property
    def is_resolved(self) -> bool:
        return self.state is InvocationState.RESOLVED


@dataclass(frozen=True)
class Success(Generic[T]):
    """Attempt completed before its deadline."""

    value: T


@dataclass(frozen=True)
class Failure:
    """Attempt failed.

    ``retryable`` is False for errors that cannot succeed on retry
    (authentication, malformed request, configuration).
    """

    kind: FailureKind
    cause: BaseException | None = None
    retryable: bool = True

    @property
    def message(self) -> str:
        if self.cause is None:
            return self.kind.value
        text = str(self.cause)
        return text or type(self.cause).__name__


AttemptOutcome = Success[Any] | Failure


@dataclass
class RetryState:
    """Attempts and timings of one logical call.

    Owned by the invoker for the duration of a single call.
    """

    started_at: float = field(default_factory=time.monotonic)
    attempts: int = 0
    outcomes: list[AttemptOutcome] = field(default_factory=list)

    def begin_attempt(self) -> int:
        self.attempts += 1
        return self.attempts

    def record(self, outcome: AttemptOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def last_outcome(self) -> AttemptOutcome | None:
        return self.outcomes[-1] if self.outcomes else None

    @property
    def elapsed_ms(self) -> float:
        """Wall-clock time since the first attempt started."""
        return (time.monotonic() - self.started_at) * 1000.0


@dataclass(frozen=True)
class InvocationResult(Generic[T]):
    """Terminal success of a logical call."""

    value: T
    attempts_made: int
    elapsed_ms: float
    label: str = "upstream"


_KIND_TO_CATEGORY = {
    FailureKind.TIMEOUT: ErrorCategory.NETWORK,
    FailureKind.NETWORK: ErrorCategory.NETWORK,
    FailureKind.UPSTREAM: ErrorCategory.UPSTREAM,
    FailureKind.CONFIGURATION: ErrorCategory.CONFIG,
}


class InvocationFailed(StoryloomError):
    """Terminal failure of a logical call.

    Carries the kind and cause of the last attempt plus the number of
    attempts made. Route handlers map ``kind`` to an HTTP status.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        *,
        attempts_made: int,
        elapsed_ms: float = 0.0,
        label: str = "upstream",
        cause: BaseException | None = None,
    ):
        super().__init__(
            message,
            category=_KIND_TO_CATEGORY[kind],
            retryable=False,
            cause=cause if isinstance(cause, Exception) else None,
        )
        self.kind = kind
        self.attempts_made = attempts_made
        self.elapsed_ms = elapsed_ms
        self.label = label

    @classmethod
    def from_failure(
        cls,
        failure: Failure,
        *,
        attempts_made: int,
        elapsed_ms: float,
        label: str,
    ) -> InvocationFailed:
        return cls(
            failure.kind,
            failure.message,
            attempts_made=attempts_made,
            elapsed_ms=elapsed_ms,
            label=label,
            cause=failure.cause,
        )

    @property
    def status_code(self) -> int | None:
        """Upstream HTTP status of the last attempt, when there was one."""
        status = getattr(self.cause, "status_code", None)
        if status is None:
            response = getattr(self.cause, "response", None)
            status = getattr(response, "status_code", None)
        return status

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            kind=self.kind.value,
            attempts_made=self.attempts_made,
            elapsed_ms=round(self.elapsed_ms, 1),
            label=self.label,
        )
        return result


__all__ = [
    "AttemptOutcome",
    "Failure",
    "FailureKind",
    "InvalidTransition",
    "InvocationFailed",
    "InvocationRequest",
    "InvocationResult",
    "InvocationState",
    "RetryState",
    "Success",
]
