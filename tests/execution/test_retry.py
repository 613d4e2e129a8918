"""Tests for the linear-backoff retry policy."""

import pytest

from storyloom.core.errors import ConfigError, InvalidConfigError
from storyloom.execution.models import Failure, FailureKind, Success
from storyloom.execution.retry import GiveUp, Retry, RetryPolicy

ALL_RETRYABLE_KINDS = [FailureKind.TIMEOUT, FailureKind.NETWORK, FailureKind.UPSTREAM]


class TestRetryPolicyConfiguration:
    """Tests for RetryPolicy construction."""

    def test_default_configuration(self):
        """Defaults match the image upstream's tunables."""
        policy = RetryPolicy()
        assert policy.max_attempts == 5
        assert policy.base_backoff_ms == 1500
        assert policy.jitter_ms == 250

    @pytest.mark.parametrize("max_attempts", [0, -1, -100])
    def test_non_positive_max_attempts_fails_fast(self, max_attempts):
        """max_attempts <= 0 is a configuration error, not unbounded retry."""
        with pytest.raises(InvalidConfigError) as exc_info:
            RetryPolicy(max_attempts=max_attempts)
        assert exc_info.value.key == "max_attempts"
        assert isinstance(exc_info.value, ConfigError)
        assert exc_info.value.retryable is False

    def test_non_integer_max_attempts_rejected(self):
        with pytest.raises(InvalidConfigError):
            RetryPolicy(max_attempts=2.5)

    def test_negative_backoff_rejected(self):
        with pytest.raises(InvalidConfigError):
            RetryPolicy(base_backoff_ms=-1)

    def test_negative_jitter_rejected(self):
        with pytest.raises(InvalidConfigError):
            RetryPolicy(jitter_ms=-0.5)


class TestRetryDecision:
    """Tests for RetryPolicy.decide."""

    @pytest.mark.parametrize("kind", ALL_RETRYABLE_KINDS)
    def test_retry_delay_within_linear_bounds(self, kind):
        """Every attempt below the limit retries after base*n + [0, 250) ms."""
        policy = RetryPolicy(max_attempts=5, base_backoff_ms=1500)
        for attempt in range(1, 5):
            for _ in range(20):
                decision = policy.decide(attempt, Failure(kind))
                assert isinstance(decision, Retry)
                assert 1500 * attempt <= decision.delay_ms < 1500 * attempt + 250

    def test_backoff_is_linear_not_exponential(self):
        """Without jitter the delay grows by exactly one unit per attempt."""
        policy = RetryPolicy(max_attempts=6, base_backoff_ms=100, jitter_ms=0)
        delays = [policy.decide(n, Failure(FailureKind.NETWORK)).delay_ms for n in range(1, 6)]
        assert delays == [100, 200, 300, 400, 500]

    def test_jitter_uses_random_source(self):
        """Jitter is random_source() * jitter_ms."""
        low = RetryPolicy(base_backoff_ms=100, random_source=lambda: 0.0)
        high = RetryPolicy(base_backoff_ms=100, random_source=lambda: 0.999)

        assert low.decide(2, Failure(FailureKind.TIMEOUT)).delay_ms == 200
        high_delay = high.decide(2, Failure(FailureKind.TIMEOUT)).delay_ms
        assert 449 < high_delay < 450

    def test_delay_seconds_conversion(self):
        assert Retry(delay_ms=1500).delay_seconds == 1.5

    @pytest.mark.parametrize("kind", ALL_RETRYABLE_KINDS)
    def test_give_up_at_max_attempts(self, kind):
        """attempt_number == max_attempts always gives up."""
        policy = RetryPolicy(max_attempts=3)
        decision = policy.decide(3, Failure(kind))
        assert isinstance(decision, GiveUp)
        assert decision.reason == "attempts_exhausted"

    def test_give_up_beyond_max_attempts(self):
        policy = RetryPolicy(max_attempts=3)
        assert isinstance(policy.decide(7, Failure(FailureKind.NETWORK)), GiveUp)

    def test_single_attempt_policy_never_retries(self):
        policy = RetryPolicy(max_attempts=1)
        assert isinstance(policy.decide(1, Failure(FailureKind.TIMEOUT)), GiveUp)

    def test_non_retryable_failure_gives_up_immediately(self):
        """Non-retryable failures stop at attempt 1 without consuming the budget."""
        policy = RetryPolicy(max_attempts=5)
        decision = policy.decide(1, Failure(FailureKind.UPSTREAM, retryable=False))
        assert isinstance(decision, GiveUp)
        assert decision.reason == "non_retryable"

    def test_configuration_failure_gives_up(self):
        policy = RetryPolicy(max_attempts=5)
        decision = policy.decide(1, Failure(FailureKind.CONFIGURATION, retryable=False))
        assert isinstance(decision, GiveUp)

    def test_success_is_rejected(self):
        """The policy is only consulted on failures."""
        with pytest.raises(ValueError):
            RetryPolicy().decide(1, Success("value"))

    def test_attempt_number_is_one_based(self):
        with pytest.raises(ValueError):
            RetryPolicy().decide(0, Failure(FailureKind.NETWORK))

    def test_decide_is_pure(self):
        """Same inputs with a deterministic random source give the same answer."""
        policy = RetryPolicy(max_attempts=4, base_backoff_ms=50, random_source=lambda: 0.5)
        failure = Failure(FailureKind.NETWORK)
        assert policy.decide(2, failure, elapsed_ms=10) == policy.decide(2, failure, elapsed_ms=9999)


class TestWorstCase:
    def test_worst_case_backoff(self):
        """3 attempts at 100 ms: 100 + 200 plus at most 2 * 250 jitter."""
        policy = RetryPolicy(max_attempts=3, base_backoff_ms=100)
        assert policy.worst_case_backoff_ms() == 300 + 500
