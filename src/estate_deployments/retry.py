"""Retry-with-delay combinator shared by the executor and the orchestrator."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait between tries."""

    max_attempts: int = 3
    delay_s: float = 5.0
    backoff: float = 1.0  # multiplier applied to the delay after each retry

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_s < 0:
            raise ValueError("delay_s must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Delay before attempt number `attempt + 1` (1-based `attempt`)."""
        return self.delay_s * (self.backoff ** (attempt - 1))


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool],
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Call `fn` until it succeeds or the policy is exhausted.

    Args:
        fn: Zero-argument callable to run
        policy: Attempt bound and inter-attempt delay
        is_retryable: Predicate deciding whether an exception warrants another try
        sleep: Blocking sleep function (injectable for tests)
        on_retry: Called with (attempt, error) before sleeping

    Returns:
        Whatever `fn` returns

    Raises:
        The original exception if it is not retryable
        RetryExhaustedError: If every attempt failed with a retryable error
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            if attempt >= policy.max_attempts:
                raise RetryExhaustedError(attempt, exc) from exc
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, exc)
            logger.debug("attempt=%d failed (%s), retrying in %.1fs", attempt, exc, delay)
            sleep(delay)
