"""Retry with capped exponential backoff."""

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import config
from ..logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_MARKERS = (
    "rate limit",
    "rate_limit",
    "429",
    "500",
    "502",
    "503",
    "504",
    "timeout",
    "timed out",
    "econnreset",
    "connection reset",
    "enotfound",
    "name or service not known",
)


@dataclass
class RetryPolicy:
    """Backoff settings. Delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_retries=config.retry_max_retries,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            multiplier=config.retry_multiplier,
        )


def calculate_backoff(attempt: int, policy: RetryPolicy) -> float:
    """Delay before retry number `attempt` (0-based), capped at max_delay."""
    return min(policy.initial_delay * policy.multiplier ** attempt, policy.max_delay)


def should_retry(attempt: int, policy: RetryPolicy) -> bool:
    return attempt < policy.max_retries


def is_transient_error(error: object) -> bool:
    """Guess from the message whether an error is worth retrying."""
    if not isinstance(error, BaseException):
        return False
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def retrying(
    policy: RetryPolicy,
    should_retry_error: Callable[[Exception], bool] = is_transient_error,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> Retrying:
    """
    Build a tenacity controller for the policy.

    Waits follow calculate_backoff: tenacity counts attempts from 1, so the
    n-th wait is initial_delay * multiplier ** (n - 1), capped at max_delay.
    """

    def before_sleep(retry_state: RetryCallState) -> None:
        attempt = retry_state.attempt_number - 1
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep
        logger.info(f"Retrying after error ({attempt + 1}/{policy.max_retries}) in {delay:.1f}s: {error}")
        if on_retry:
            on_retry(attempt, error, delay)

    return Retrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_exponential(
            multiplier=policy.initial_delay,
            exp_base=policy.multiplier,
            max=policy.max_delay,
        ),
        retry=retry_if_exception(should_retry_error),
        sleep=sleep,
        before_sleep=before_sleep,
        reraise=True,
    )


def with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    should_retry_error: Callable[[Exception], bool] = is_transient_error,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """
    Call fn, retrying accepted errors up to policy.max_retries times.

    Args:
        fn: Zero-argument callable to run
        policy: Backoff settings
        should_retry_error: Predicate deciding whether an error is retryable
        sleep: Sleep function (injectable for tests)
        on_retry: Optional callback(attempt, error, delay) before each sleep

    Returns:
        The first successful result

    Raises:
        The last error once retries are exhausted, or any non-retryable error
    """
    return retrying(policy, should_retry_error, sleep, on_retry)(fn)
