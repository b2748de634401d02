"""
Retry logic with backoff for live-search calls.

The live-search backend answers transient failures with 500 or 406; those
and network errors are retried. Each program carries its own policy since
some backends are slower to recover than others.

Usage:
    >>> from award_reconciler.retry import policy_for, retry_call
    >>>
    >>> policy = policy_for("as")
    >>> data = retry_call(lambda: client.search_once(...), policy)
"""

from __future__ import annotations

import random
import time
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Tuple, Type, TypeVar

from .config import get_config
from .errors import LiveSearchHTTPError, LiveSearchNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Status codes the live-search backend uses for transient failures
RETRY_STATUS_CODES: Tuple[int, ...] = (500, 406)

# Exceptions that should trigger a retry regardless of message
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    LiveSearchNetworkError,
    ConnectionError,
    TimeoutError,
)

RETRYABLE_MESSAGES: Tuple[str, ...] = (
    "network error",
    "socket hang up",
    "american microservice error",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff shape for one program."""
    max_attempts: int = 3
    base_delay: float = 5.0
    max_delay: float = 30.0
    exponential_base: float = 1.0
    jitter: bool = False

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given 1-based failed attempt."""
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= (0.5 + random.random())
        return delay


# Per-program attempt budgets
PROGRAM_ATTEMPTS: Dict[str, Tuple[int, float]] = {
    "aa": (3, 5.0),
    "b6": (3, 5.0),
    "as": (2, 3.0),
    "ay": (2, 3.0),
}


def default_policy() -> RetryPolicy:
    config = get_config()
    return RetryPolicy(
        max_attempts=config.max_retries + 1,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
        exponential_base=config.retry_exponential_base,
        jitter=config.retry_jitter,
    )


def policy_for(program: str) -> RetryPolicy:
    """
    Get the retry policy for a program.

    Programs with a known budget keep their attempt count and delay; the
    backoff shape always comes from config.
    """
    policy = default_policy()
    known = PROGRAM_ATTEMPTS.get(program.lower())
    if known is None:
        return policy
    attempts, delay = known
    return replace(policy, max_attempts=attempts, base_delay=min(delay, policy.base_delay))


def is_retryable_error(exception: Exception) -> bool:
    """
    Check if an exception should trigger a retry.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable
    """
    if isinstance(exception, LiveSearchHTTPError):
        return exception.status_code in RETRY_STATUS_CODES

    if isinstance(exception, DEFAULT_RETRYABLE_EXCEPTIONS):
        return True

    error_str = str(exception).lower()
    return any(message in error_str for message in RETRYABLE_MESSAGES)


def retry_call(
    func: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    should_retry: Callable[[Exception], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
) -> T:
    """
    Call ``func`` until it succeeds, fails with a non-retryable error, or
    the policy's attempts run out.

    Args:
        func: Zero-argument callable to run
        policy: Retry policy (default: from config)
        should_retry: Predicate deciding whether an exception is transient
        sleep: Sleep function, replaceable in tests
        on_retry: Optional callback called before each retry with
                  (exception, attempt_number, delay)

    Returns:
        The first successful result

    Raises:
        The last exception when attempts are exhausted or it is not retryable
    """
    policy = policy or default_policy()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return func()
        except Exception as e:
            if attempt >= policy.max_attempts or not should_retry(e):
                if attempt > 1:
                    logger.warning(f"Giving up after {attempt} attempt(s): {e}")
                raise

            delay = policy.delay_for(attempt)
            logger.info(
                f"Attempt {attempt}/{policy.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            if on_retry:
                on_retry(e, attempt, delay)
            sleep(delay)

    raise RuntimeError("Retry loop exited unexpectedly")


__all__ = [
    "RETRY_STATUS_CODES",
    "DEFAULT_RETRYABLE_EXCEPTIONS",
    "RetryPolicy",
    "PROGRAM_ATTEMPTS",
    "default_policy",
    "policy_for",
    "is_retryable_error",
    "retry_call",
]
