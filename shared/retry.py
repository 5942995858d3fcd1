"""
Retry mechanism for calls against slow or unreliable upstreams.

Failures are split into two classes. ``TRANSIENT`` failures are retried
with backoff until attempts run out; ``PERMANENT`` failures (the upstream
explicitly rejected the request) stop the loop immediately so callers can
memoize them instead of burning retries.
"""

import asyncio
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from shared.logging import get_logger

T = TypeVar("T")


class FailureClass(str, Enum):
    """Classification carried by a failed retry loop."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = False,
                 backoff_strategy: str = "linear"):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy


class RetryError(Exception):
    """Exception raised when a retried operation gives up."""
    def __init__(self, message: str, last_exception: BaseException, attempts: int,
                 failure_class: FailureClass = FailureClass.TRANSIENT):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts
        self.failure_class = failure_class

    @property
    def permanent(self) -> bool:
        return self.failure_class is FailureClass.PERMANENT


async def retry_call(operation: Callable[[], Awaitable[T]],
                     config: Optional[RetryConfig] = None,
                     *,
                     retry_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
                     permanent_exceptions: Tuple[Type[BaseException], ...] = (),
                     name: str = "operation",
                     on_retry: Optional[Callable[[int, BaseException], Any]] = None) -> T:
    """Run ``operation`` until it succeeds, fails permanently or attempts run out.

    Exceptions outside ``retry_exceptions`` propagate untouched. The sleep
    between attempt ``n`` and ``n + 1`` is computed from ``n``; there is no
    sleep after the final attempt.
    """
    if config is None:
        config = RetryConfig()

    logger = get_logger(f"retry.{name}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await operation()
        except permanent_exceptions as e:
            logger.warning(
                "Permanent failure, not retrying",
                attempt=attempt,
                max_attempts=config.max_attempts,
                error=str(e)
            )
            raise RetryError(
                f"{name} rejected permanently on attempt {attempt}",
                last_exception=e,
                attempts=attempt,
                failure_class=FailureClass.PERMANENT
            ) from e
        except retry_exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    error=str(e)
                )
                raise RetryError(
                    f"{name} failed after {config.max_attempts} attempts",
                    last_exception=e,
                    attempts=attempt
                ) from e

            delay = _calculate_delay(attempt, config)

            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay=delay,
                error=str(e)
            )
            if on_retry is not None:
                on_retry(attempt, e)

            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                logger.info("Retry succeeded", attempt=attempt)
            return result

    # Unreachable: the final attempt either returns or raises
    raise RuntimeError(f"retry loop for {name} ended without a result")


def _calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay between retry attempts."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    elif config.backoff_strategy == "fixed":
        delay = config.base_delay
    else:
        delay = config.base_delay

    # Apply max delay cap
    delay = min(delay, config.max_delay)

    # Add jitter if enabled
    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)
