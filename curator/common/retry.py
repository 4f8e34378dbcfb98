"""
Retry combinator for remote calls.

Linear-growth backoff: before retry n (n starting at 1) wait
``backoff_base * n`` seconds.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import RetryExhausted

logger = logging.getLogger("curator.common.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between."""
    max_attempts: int = 3
    backoff_base: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_base < 0:
            raise ValueError("backoff_base must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return self.backoff_base * attempt

    def with_attempts(self, max_attempts: Optional[int]) -> "RetryPolicy":
        if max_attempts is None:
            return self
        return RetryPolicy(max_attempts=max_attempts, backoff_base=self.backoff_base)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy is exhausted.

    Any ``Exception`` raised by the operation counts as a retryable failure.
    Cancellation is never swallowed.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt count and backoff unit
        label: Name used in log lines and the final error
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The first successful result

    Raises:
        RetryExhausted: carrying the last error after the final attempt
    """
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            logger.warning(
                "%s failed (attempt %d/%d): %s", label, attempt, policy.max_attempts, e
            )
            if attempt < policy.max_attempts:
                await sleep(policy.delay_for(attempt))

    raise RetryExhausted(label, policy.max_attempts, last_error)
