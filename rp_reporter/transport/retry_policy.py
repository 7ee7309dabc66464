"""Retry policy for Report Portal requests.

Every request gets a fixed budget of attempts with a fixed, blocking delay
between them. Failures never escape the executor: callers receive an
Outcome and decide what a dropped report means for them.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY = "retry"
FAIL = "fail"


@dataclass
class Success:
    """The operation returned a value."""
    value: Any
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True


@dataclass
class RetryableFailure:
    """The operation failed in a way another attempt might fix."""
    reason: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return False


@dataclass
class PermanentFailure:
    """The operation failed and must not be attempted again."""
    reason: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Success, RetryableFailure, PermanentFailure]


def retry_everything(error: BaseException) -> str:
    """Default classification: every error is worth another attempt."""
    return RETRY


@dataclass
class RetryPolicy:
    """Fixed attempt budget and fixed delay between attempts."""
    max_attempts: int = 3
    delay: float = 10.0
    classify: Callable[[BaseException], str] = retry_everything


def default_retry_policy() -> RetryPolicy:
    """Policy every Report Portal request is sent under.

    A request is tried at most three times; each failed try blocks the
    caller for ten seconds before the next one.
    """
    return RetryPolicy()


def no_retry_policy() -> RetryPolicy:
    """Single-shot policy: a failed request is dropped without waiting."""
    return RetryPolicy(max_attempts=1, delay=0.0)


class RetryExecutor:
    """Runs one logical request under a RetryPolicy."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ):
        """Initialize retry executor.

        Args:
            policy: Retry policy (default: 3 attempts, 10s delay).
            wait: Blocking wait used between attempts. Receives the delay in
                seconds and returns True if the wait was cancelled. Defaults
                to waiting on this executor's cancellation event.
        """
        self.policy = policy or default_retry_policy()
        self._cancelled = threading.Event()
        self._wait = wait or self._cancelled.wait

    def cancel(self) -> None:
        """Interrupt a pending backoff wait and stop retrying."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def execute(
        self,
        operation: Callable[[], T],
        label: str,
        classify: Optional[Callable[[BaseException], str]] = None,
    ) -> Outcome:
        """Execute ``operation`` until it succeeds or the budget runs out.

        Args:
            operation: Zero-argument callable performing one request.
            label: Request name used in log messages (e.g. ``launch``).
            classify: Per-call override of the policy's error classification.

        Returns:
            Success with the operation's return value, or a failure.
        """
        classify = classify or self.policy.classify
        max_attempts = self.policy.max_attempts
        attempt = 0

        while True:
            attempt += 1
            try:
                value = operation()
            except Exception as e:
                logger.warning(
                    "[ReportPortal] Request to [%s] produced an exception: %s: %s",
                    label, type(e).__name__, e,
                )
                if classify(e) == FAIL:
                    return PermanentFailure(e)

                remaining = max_attempts - attempt
                if remaining <= 0:
                    logger.warning(
                        "[ReportPortal] Failed to execute request to [%s] after %d attempts.",
                        label, max_attempts,
                    )
                    return RetryableFailure(e)

                logger.warning(
                    "[ReportPortal] Waiting %s seconds and retrying request to [%s], %d attempts remaining.",
                    _format_delay(self.policy.delay), label, remaining,
                )
                if self.cancelled or self._wait(self.policy.delay):
                    logger.warning("[ReportPortal] Retrying request to [%s] was cancelled.", label)
                    return PermanentFailure(e)
                continue

            if attempt > 1:
                logger.info(
                    "[ReportPortal] Request to [%s] successful after %d attempts.",
                    label, attempt,
                )
            return Success(value, attempts=attempt)


def _format_delay(delay: float) -> str:
    return f"{delay:g}"
