"""
Retry Policy - Capped exponential backoff for connecting to soft dependencies

Used when connecting to Redis and MongoDB at startup. Both are optional, so
the policy gives up quickly and lets the caller degrade.

Design principles:
- Explicit policy object (no ad hoc attempt counters in connectors)
- Injectable sleep and clock so tests never wait
- Delay for attempt n: min(base_delay * factor ** (n - 1), max_delay)
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when every attempt allowed by a RetryPolicy has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """
    Capped exponential backoff.

    Attributes:
        base_delay: Delay before the second attempt, in seconds
        factor: Multiplier applied per further attempt
        max_delay: Upper bound for a single delay
        max_attempts: Total attempts, including the first
        max_elapsed: Stop retrying once this many seconds have passed
    """
    base_delay: float = 0.1
    factor: float = 2.0
    max_delay: float = 1.0
    max_attempts: int = 3
    max_elapsed: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt.

        Args:
            attempt: 1-indexed number of the attempt that just failed

        Returns:
            float: Seconds to sleep before the next attempt
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return min(self.base_delay * (self.factor ** (attempt - 1)), self.max_delay)

    def call(
        self,
        operation: Callable[[], object],
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        description: str = "operation",
    ):
        """
        Run operation until it succeeds or the policy is exhausted.

        Args:
            operation: Zero-argument callable
            retry_on: Exception types that trigger a retry; others propagate
            sleep: Sleep function (injected in tests)
            clock: Monotonic clock in seconds (injected in tests)
            description: Used in log messages

        Returns:
            Whatever operation returns

        Raises:
            RetryExhausted: If every allowed attempt failed
        """
        started = clock()
        attempt = 0

        while True:
            attempt += 1
            try:
                return operation()
            except retry_on as e:
                elapsed = clock() - started
                if attempt >= self.max_attempts:
                    logger.warning(f"{description}: max retry attempts reached ({attempt})")
                    raise RetryExhausted(attempt, e) from e
                delay = self.delay_for(attempt)
                if elapsed + delay > self.max_elapsed:
                    logger.warning(f"{description}: retry window of {self.max_elapsed}s exceeded")
                    raise RetryExhausted(attempt, e) from e
                logger.info(f"{description} failed (attempt {attempt}): {e}; retrying in {delay:.2f}s")
                sleep(delay)
