"""
Bounded exponential-backoff retries for transient provider failures.

Only TransientProviderError is retried; every other exception escapes on
the first attempt. After the last attempt the original
TransientProviderError is re-raised so callers can record it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .exceptions import ConfigurationError, TransientProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for provider calls.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Seconds to wait before the second attempt; doubles per attempt
        max_delay: Upper bound for a single wait
    """

    max_attempts: int = 5
    base_delay: float = 2.0
    max_delay: float = 60.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("Backoff delays must not be negative")

    def retrying(self, description: str = "provider call") -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            wait = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"  {description}: transient failure "
                f"(attempt {retry_state.attempt_number}/{self.max_attempts}), "
                f"retrying in {wait:.1f}s: {error}"
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception_type(TransientProviderError),
            before_sleep=log_retry,
            reraise=True,
        )


async def call_with_retry(
    policy: RetryPolicy,
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    description: str = "provider call",
) -> Any:
    """
    Await func(*args), retrying TransientProviderError per policy.

    Raises:
        TransientProviderError: When every attempt failed transiently
        Exception: Any non-transient error from func, unchanged
    """
    async for attempt in policy.retrying(description):
        with attempt:
            result = await func(*args)
    return result
