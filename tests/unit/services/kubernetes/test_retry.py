"""Unit tests for the deploy retry loop."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from airgap_deployer.integrations.kubernetes.exceptions import (
    ApplyError,
    DeployTimeoutError,
    HistoryError,
    KubernetesTimeoutError,
    NamespaceProvisionError,
    RenderError,
    RollbackError,
)
from airgap_deployer.integrations.kubernetes.models.deploy import (
    FixedRetries,
    Operation,
    RetryPolicy,
)
from airgap_deployer.services.kubernetes.retry import (
    RetriesExhaustedError,
    is_retryable,
    run_with_retry,
)


class FakeClock:
    """Clock that only moves when the retry loop sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FlakyAction:
    """Fails a set number of times, then succeeds."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or ApplyError("unable to upgrade chart: timed out")
        self.attempts: list[int] = []

    def __call__(self, attempt: int) -> str:
        self.attempts.append(attempt)
        if len(self.attempts) <= self.failures:
            raise self.error
        return "deployed"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _run(
    action: FlakyAction,
    clock: FakeClock,
    policy: RetryPolicy,
    operation: Operation = Operation.UPGRADE,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> str:
    return run_with_retry(
        action,
        operation=operation,
        policy=policy,
        release_name="podinfo",
        namespace="podinfo",
        sleep=clock.sleep,
        clock=clock,
        on_retry=on_retry,
    )


# =============================================================================
# Retryable errors
# =============================================================================


@pytest.mark.unit
@pytest.mark.kubernetes
class TestIsRetryable:
    """Tests for is_retryable."""

    @pytest.mark.parametrize(
        "error",
        [ApplyError("apply"), RenderError("render"), KubernetesTimeoutError("slow")],
    )
    def test_retryable(self, error: Exception) -> None:
        """Should retry render, apply, and cluster errors."""
        assert is_retryable(error)

    @pytest.mark.parametrize(
        "error",
        [
            NamespaceProvisionError("namespace"),
            HistoryError("history"),
            RollbackError("rollback"),
            ValueError("bug"),
        ],
    )
    def test_not_retryable(self, error: Exception) -> None:
        """Should not retry errors another attempt cannot fix."""
        assert not is_retryable(error)


# =============================================================================
# Retry loop
# =============================================================================


@pytest.mark.unit
@pytest.mark.kubernetes
class TestRunWithRetry:
    """Tests for run_with_retry."""

    def test_first_attempt_succeeds(self, clock: FakeClock) -> None:
        """Should return at once without sleeping."""
        action = FlakyAction(failures=0)

        assert _run(action, clock, RetryPolicy()) == "deployed"
        assert action.attempts == [1]
        assert clock.sleeps == []

    def test_succeeds_after_failures(self, clock: FakeClock) -> None:
        """Should keep attempting until an attempt succeeds."""
        action = FlakyAction(failures=2)

        result = _run(action, clock, RetryPolicy(backoff_seconds=5))

        assert result == "deployed"
        assert action.attempts == [1, 2, 3]
        assert clock.sleeps == [5, 5]

    def test_exhausted(self, clock: FakeClock) -> None:
        """Should raise RetriesExhaustedError after retries + 1 attempts."""
        action = FlakyAction(failures=10)
        policy = RetryPolicy(max_retries=FixedRetries(retries=2), backoff_seconds=1)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            _run(action, clock, policy)

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is action.error
        assert exc_info.value.elapsed_seconds == 2
        assert action.attempts == [1, 2, 3]

    def test_zero_retries(self, clock: FakeClock) -> None:
        """Should make exactly one attempt with zero retries."""
        action = FlakyAction(failures=1)
        policy = RetryPolicy(max_retries=FixedRetries(retries=0))

        with pytest.raises(RetriesExhaustedError):
            _run(action, clock, policy)

        assert action.attempts == [1]
        assert clock.sleeps == []

    @pytest.mark.parametrize(
        ("operation", "attempts"),
        [(Operation.INSTALL, 4), (Operation.UPGRADE, 6)],
    )
    def test_default_remediation(
        self, clock: FakeClock, operation: Operation, attempts: int
    ) -> None:
        """Should use the built-in retry count for each operation."""
        action = FlakyAction(failures=10)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            _run(action, clock, RetryPolicy(), operation=operation)

        assert exc_info.value.attempts == attempts

    def test_non_retryable_short_circuits(self, clock: FakeClock) -> None:
        """Should raise a non-retryable error unchanged after one attempt."""
        error = NamespaceProvisionError("unable to create the missing namespace podinfo")
        action = FlakyAction(failures=10, error=error)

        with pytest.raises(NamespaceProvisionError) as exc_info:
            _run(action, clock, RetryPolicy())

        assert exc_info.value is error
        assert action.attempts == [1]

    def test_unexpected_error_propagates(self, clock: FakeClock) -> None:
        """Should not retry errors outside the deploy hierarchy."""
        action = FlakyAction(failures=10, error=KeyError("values"))

        with pytest.raises(KeyError):
            _run(action, clock, RetryPolicy())

        assert action.attempts == [1]

    def test_budget_exceeded(self, clock: FakeClock) -> None:
        """Should raise DeployTimeoutError when the budget runs out first."""
        action = FlakyAction(failures=10)
        policy = RetryPolicy(backoff_seconds=10, max_total_seconds=25)

        with pytest.raises(DeployTimeoutError, match="upgrade timed out after 30s") as exc_info:
            _run(action, clock, policy)

        error = exc_info.value
        assert error.attempts == 4
        assert error.elapsed_seconds == 30
        assert error.operation == "upgrade"
        assert error.release_name == "podinfo"
        assert error.__cause__ is action.error

    def test_budget_not_reached(self, clock: FakeClock) -> None:
        """Should succeed within the budget."""
        action = FlakyAction(failures=1)
        policy = RetryPolicy(backoff_seconds=10, max_total_seconds=60)

        assert _run(action, clock, policy) == "deployed"

    def test_on_retry_called(self, clock: FakeClock) -> None:
        """Should report each failed attempt before the next one."""
        action = FlakyAction(failures=2)
        seen: list[tuple[int, BaseException]] = []

        _run(action, clock, RetryPolicy(), on_retry=lambda n, e: seen.append((n, e)))

        assert seen == [(1, action.error), (2, action.error)]
