"""
Retry Policy: Exponential Backoff with Full Jitter

Implements the retry strategy used by the HTTP transport:
- Exponential backoff: 100ms × 2^n, capped at 10s
- Full jitter: random(0, backoff) to prevent thundering herd
- Max retries: 3 for idempotent requests, 0 for everything else

Which failures are worth another attempt is decided by the caller through
two predicates, one for raised faults and one for returned values, so the
policy itself knows nothing about HTTP.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from awsrest.core import constants as C
from awsrest.core.config import RetryConfig
from awsrest.core.errors import AWSError, TransportFault

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration."""

    max_retries: int = C.RETRY_MAX_ATTEMPTS
    base_delay_ms: int = C.RETRY_BASE_MS
    max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    exponential_base: float = 2.0
    jitter: bool = True

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """No retries (for non-idempotent requests)."""
        return cls(max_retries=0)

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            jitter=config.jitter,
        )

    def backoff_ms(self, attempt: int) -> float:
        """Delay before retry number `attempt + 1` (attempt is 0-based)."""
        return calculate_backoff(
            attempt=attempt,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
        )


@dataclass
class RetryStats:
    """Retry attempt statistics for one call."""

    total_attempts: int = 0
    failed_attempts: int = 0
    total_delay_ms: float = 0.0
    last_error: Optional[str] = None

    @property
    def retries(self) -> int:
        return max(0, self.total_attempts - 1)


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Calculate backoff delay with optional jitter.

    Full jitter: random(0, min(cap, base * 2^attempt))
    """
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))
    if jitter:
        delay = random.uniform(0, delay)
    return delay


def _never(_: object) -> bool:
    return False


class Retrier(Generic[T]):
    """
    Drives one call through its attempts.

    Usage:
        retrier = Retrier(policy, operation="Get", retry_on_error=is_transient)
        response = await retrier.run(send_once)

    `send_once` receives the 0-based attempt number. A raised `AWSError`
    is retried when `retry_on_error` accepts it; a returned value is retried
    when `retry_on_result` accepts it. Once attempts run out the last value
    is returned, or the last fault is raised (wrapped as retry-exhausted
    when more than one attempt was made).
    """

    __slots__ = ("_policy", "_operation", "_retry_on_error", "_retry_on_result", "stats")

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        operation: str,
        retry_on_error: Callable[[AWSError], bool] = _never,
        retry_on_result: Callable[[T], bool] = _never,
    ) -> None:
        self._policy = policy
        self._operation = operation
        self._retry_on_error = retry_on_error
        self._retry_on_result = retry_on_result
        self.stats = RetryStats()

    async def run(self, func: Callable[[int], Awaitable[T]]) -> T:
        policy = self._policy
        for attempt in range(policy.max_retries + 1):
            self.stats.total_attempts += 1
            last_attempt = attempt >= policy.max_retries

            try:
                result = await func(attempt)
            except AWSError as e:
                self.stats.failed_attempts += 1
                self.stats.last_error = e.message
                if not self._retry_on_error(e):
                    raise
                if last_attempt:
                    if attempt > 0:
                        raise TransportFault.retry_exhausted(
                            self._operation, self.stats.total_attempts, e,
                        ) from e
                    raise
                reason = e.code.name
            else:
                if last_attempt or not self._retry_on_result(result):
                    return result
                self.stats.failed_attempts += 1
                reason = "retryable response"

            delay = policy.backoff_ms(attempt)
            self.stats.total_delay_ms += delay
            logger.warning(
                f"{self._operation}: attempt {attempt + 1} failed ({reason}), "
                f"retrying in {delay:.0f}ms",
            )
            await asyncio.sleep(delay / 1000)

        # range() above always runs at least once and every path exits
        raise AssertionError("unreachable")


async def retry_with_backoff(
    func: Callable[[int], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    operation: str = "request",
    retry_on_error: Callable[[AWSError], bool] = _never,
    retry_on_result: Callable[[T], bool] = _never,
) -> T:
    """
    Execute an async function with retry and exponential backoff.

    Args:
        func: Async function taking the attempt number
        policy: Retry configuration (default if None)
        operation: Name used in log lines and the exhausted fault
        retry_on_error: Whether a raised fault deserves another attempt
        retry_on_result: Whether a returned value deserves another attempt

    Returns:
        The first accepted value, or the last value once attempts run out

    Raises:
        AWSError: The non-retryable fault, or TransportFault after exhaustion
    """
    retrier: Retrier[T] = Retrier(
        policy or RetryPolicy.default(),
        operation=operation,
        retry_on_error=retry_on_error,
        retry_on_result=retry_on_result,
    )
    return await retrier.run(func)
