"""
Retry policy for upstream calls.

Provides:
- Exponential backoff retry that honors a server-suggested ``retry_after``

The Graph API client never retries on its own; callers opt in by wrapping a
call with ``retry_with_backoff`` and choosing which errors are retryable.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

from adsperf.config import PerformanceConfig, config as app_config
from adsperf.exceptions import MetaConnectionError
from adsperf.observability import get_logger

logger = get_logger(__name__)

RETRYABLE_UPSTREAM_ERRORS = (MetaConnectionError,)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: float = 0.1  # random jitter factor

    @classmethod
    def from_performance(cls, performance: Optional[PerformanceConfig] = None) -> "RetryConfig":
        """Build from the configured upstream policy (UPSTREAM_RETRY_ATTEMPTS)."""
        performance = performance or app_config.performance
        return cls(
            max_attempts=max(1, performance.retry_attempts),
            base_delay=performance.retry_base_delay,
            max_delay=performance.retry_max_delay,
        )


def compute_delay(config: RetryConfig, attempt: int, error: Optional[BaseException] = None) -> float:
    """
    Delay before the next attempt.

    A ``retry_after`` carried by the error replaces the backoff schedule,
    but is still capped at max_delay.
    """
    retry_after = getattr(error, "retry_after", None)
    if retry_after:
        return min(float(retry_after), config.max_delay)

    delay = min(
        config.base_delay * (config.exponential_base ** (attempt - 1)),
        config.max_delay
    )
    return delay + delay * config.jitter * random.random()


async def retry_with_backoff(
    func: Callable[..., Any],
    *args,
    config: Optional[RetryConfig] = None,
    retryable_exceptions: tuple = RETRYABLE_UPSTREAM_ERRORS,
    **kwargs
) -> Any:
    """
    Execute function with exponential backoff retry.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        config: Retry configuration
        retryable_exceptions: Exceptions to retry on
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        Last exception if all retries fail
    """
    config = config or RetryConfig()

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt == config.max_attempts:
                if config.max_attempts > 1:
                    logger.error(
                        f"All {config.max_attempts} retry attempts failed",
                        extra={"error": str(e)}
                    )
                raise

            delay = compute_delay(config, attempt, e)
            logger.warning(
                f"Attempt {attempt} failed, retrying in {delay:.2f}s",
                extra={"attempt": attempt, "delay": delay, "error": str(e)}
            )
            await asyncio.sleep(delay)
