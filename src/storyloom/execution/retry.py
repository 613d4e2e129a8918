"""Retry policy: linear backoff with jitter and a bounded attempt budget.

The policy is a pure decision function. It never sleeps and never calls
anything; the invoker asks it what to do after a failed attempt and acts on
the answer.

    delay_ms = base_backoff_ms * attempt_number + uniform[0, jitter_ms)

Example:
    >>> from storyloom.execution.retry import RetryPolicy, Retry
    >>> from storyloom.execution.models import Failure, FailureKind
    >>>
    >>> policy = RetryPolicy(max_attempts=3, base_backoff_ms=100)
    >>> decision = policy.decide(1, Failure(FailureKind.TIMEOUT))
    >>> isinstance(decision, Retry) and 100 <= decision.delay_ms < 350
    True
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field

from storyloom.core.errors import InvalidConfigError
from storyloom.execution.models import AttemptOutcome, Failure

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_BACKOFF_MS = 1500.0
DEFAULT_JITTER_MS = 250.0


@dataclass(frozen=True)
class Retry:
    """Re-attempt after ``delay_ms`` milliseconds."""

    delay_ms: float

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


@dataclass(frozen=True)
class GiveUp:
    """Stop; the last failure is terminal."""

    reason: str = "attempts_exhausted"


RetryDecision = Retry | GiveUp


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded linear-backoff retry policy.

    Attributes:
        max_attempts: Total attempts including the first (must be >= 1)
        base_backoff_ms: Linear backoff unit in milliseconds
        jitter_ms: Upper bound (exclusive) of the uniform random jitter
        random_source: Returns a float in [0, 1); injectable for tests
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_backoff_ms: float = DEFAULT_BASE_BACKOFF_MS
    jitter_ms: float = DEFAULT_JITTER_MS
    random_source: Callable[[], float] = field(default=random.random, repr=False, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise InvalidConfigError("max_attempts", self.max_attempts, "max_attempts must be an integer")
        if self.max_attempts <= 0:
            raise InvalidConfigError(
                "max_attempts",
                self.max_attempts,
                f"max_attempts must be at least 1, got {self.max_attempts}",
            )
        if self.base_backoff_ms < 0:
            raise InvalidConfigError("base_backoff_ms", self.base_backoff_ms)
        if self.jitter_ms < 0:
            raise InvalidConfigError("jitter_ms", self.jitter_ms)

    def backoff_ms(self, attempt_number: int) -> float:
        """Delay to wait after failed attempt ``attempt_number``."""
        return self.base_backoff_ms * attempt_number + self.random_source() * self.jitter_ms

    def decide(
        self,
        attempt_number: int,
        outcome: AttemptOutcome,
        elapsed_ms: float = 0.0,
    ) -> RetryDecision:
        """Decide what to do after a failed attempt.

        Args:
            attempt_number: 1-based number of the attempt that just failed
            outcome: The failed attempt's outcome
            elapsed_ms: Time spent on the logical call so far (informational)

        Returns:
            ``Retry(delay_ms)`` or ``GiveUp``

        Raises:
            ValueError: attempt_number < 1 or outcome is not a Failure
        """
        if attempt_number < 1:
            raise ValueError(f"attempt_number is 1-based, got {attempt_number}")
        if not isinstance(outcome, Failure):
            raise ValueError("RetryPolicy only decides on Failure outcomes")

        if not outcome.retryable:
            return GiveUp(reason="non_retryable")
        if attempt_number >= self.max_attempts:
            return GiveUp()
        return Retry(delay_ms=self.backoff_ms(attempt_number))

    def worst_case_backoff_ms(self) -> float:
        """Upper bound on total backoff across all retries."""
        retries = self.max_attempts - 1
        return self.base_backoff_ms * retries * (retries + 1) / 2 + self.jitter_ms * retries


__all__ = [
    "DEFAULT_BASE_BACKOFF_MS",
    "DEFAULT_JITTER_MS",
    "DEFAULT_MAX_ATTEMPTS",
    "GiveUp",
    "Retry",
    "RetryDecision",
    "RetryPolicy",
]
