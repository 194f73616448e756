"""Retry loop for install and upgrade attempts.

Every attempt re-runs the whole operation. Attempts are bounded by the
retry policy's count and, optionally, by a wall-clock budget checked
between attempts. Errors that retrying cannot fix stop the loop at once.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)
from tenacity.stop import stop_base

from airgap_deployer.integrations.kubernetes.exceptions import (
    ConfigurationError,
    DeployTimeoutError,
    HistoryError,
    KubernetesError,
    NamespaceProvisionError,
    RollbackError,
)

if TYPE_CHECKING:
    from airgap_deployer.integrations.kubernetes.models.deploy import Operation, RetryPolicy

logger = structlog.get_logger()

T = TypeVar("T")

NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    ConfigurationError,
    NamespaceProvisionError,
    HistoryError,
    RollbackError,
)


def is_retryable(error: BaseException) -> bool:
    """Whether another attempt could succeed after this error."""
    return isinstance(error, KubernetesError) and not isinstance(error, NON_RETRYABLE_ERRORS)


class RetriesExhaustedError(Exception):
    """Every allowed attempt failed with a retryable error.

    Attributes:
        last_error: Error raised by the final attempt.
        attempts: Attempts made.
        elapsed_seconds: Wall-clock time spent in the loop.
    """

    def __init__(self, last_error: BaseException, attempts: int, elapsed_seconds: float) -> None:
        super().__init__(str(last_error))
        self.last_error = last_error
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class stop_after_budget(stop_base):
    """Stop once a wall-clock budget has elapsed since construction."""

    def __init__(self, budget_seconds: float, clock: Callable[[], float]) -> None:
        self.budget_seconds = budget_seconds
        self.clock = clock
        self.started = clock()

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.clock() - self.started >= self.budget_seconds


def run_with_retry(
    action: Callable[[int], T],
    *,
    operation: Operation,
    policy: RetryPolicy,
    release_name: str,
    namespace: str = "",
    sleep: Callable[[float], Any] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    """Run ``action`` until it succeeds or the policy gives up.

    Args:
        action: Called with the 1-based attempt number.
        operation: Operation being attempted, for limits and log context.
        policy: Retry count, backoff, and wall-clock budget.
        release_name: Release being deployed, for errors and log context.
        namespace: Release namespace, for errors.
        sleep: Sleeps between attempts.
        clock: Monotonic clock used for the wall-clock budget.
        on_retry: Called with the failed attempt number and its error
            before sleeping ahead of the next attempt.

    Returns:
        The result of the first successful attempt.

    Raises:
        RetriesExhaustedError: If every attempt failed.
        DeployTimeoutError: If the wall-clock budget elapsed first.
        Exception: Any non-retryable error, unchanged, as soon as it is raised.
    """
    max_attempts = policy.attempts_for(operation)
    log = logger.bind(release=release_name, operation=operation.value)

    stop: stop_base = stop_after_attempt(max_attempts)
    if policy.max_total_seconds is not None:
        stop = stop | stop_after_budget(policy.max_total_seconds, clock)
    started = clock()
    attempt = 0

    def attempt_once() -> T:
        nonlocal attempt
        attempt += 1
        return action(attempt)

    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "deploy_attempt_failed",
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            backoff_seconds=policy.backoff_seconds,
            error=str(error),
        )
        if on_retry is not None and error is not None:
            on_retry(retry_state.attempt_number, error)

    retrying = Retrying(
        stop=stop,
        wait=wait_fixed(policy.backoff_seconds),
        retry=retry_if_exception(is_retryable),
        sleep=sleep,
        before_sleep=before_sleep,
    )

    try:
        return retrying(attempt_once)
    except RetryError as e:
        attempts = e.last_attempt.attempt_number
        last_error = e.last_attempt.exception()
        elapsed = clock() - started
        log.error(
            "deploy_attempts_exhausted",
            attempts=attempts,
            max_attempts=max_attempts,
            elapsed_seconds=round(elapsed, 3),
            error=str(last_error),
        )
        if attempts < max_attempts:
            raise DeployTimeoutError(
                f"{operation.value} timed out after {elapsed:.0f}s and {attempts} attempt(s): "
                f"{last_error}",
                operation=operation.value,
                release_name=release_name,
                namespace=namespace,
                attempts=attempts,
                elapsed_seconds=elapsed,
            ) from last_error
        if last_error is None:
            raise
        raise RetriesExhaustedError(last_error, attempts, elapsed) from last_error
