"""Retry strategies with exponential backoff for directory and queue fetches.

Only data fetches are retried. A gate decision is never retried: a new
decision always needs a fresh snapshot.

Example:
    >>> from runguard.execution.retry import ExponentialBackoff, RetryContext
    >>>
    >>> strategy = ExponentialBackoff(max_attempts=3, base_delay=1.0, multiplier=2.0)
    >>> [strategy.next_delay(attempt) for attempt in range(2)]
    [1.0, 2.0]
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from runguard.core.errors import is_retryable

T = TypeVar("T")


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempt: Zero-based retry number (0 = first retry)

        Returns:
            Delay in seconds before next attempt
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Determine if another attempt should be made.

        Args:
            attempt: Number of attempts made so far
            error: The exception that caused the failure
        """
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Bounded exponential backoff.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) [+ jitter]

    Attributes:
        max_attempts: Total attempts, including the first one
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier
        jitter: Add randomness to spread concurrent callers
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
        retry_if: Predicate deciding which errors are retryable
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = False
    jitter_range: float = 0.25
    retry_if: Callable[[BaseException], bool] = is_retryable

    def next_delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.multiplier ** attempt),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)

        return delay

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        if attempt >= self.max_attempts:
            return False

        if error is not None:
            return self.retry_if(error)

        return True


@dataclass
class NoRetry(RetryStrategy):
    """No retry - fail immediately."""

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        return False


@dataclass
class RetryContext:
    """Tracks retry state for a single fetch and executes it.

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_attempts=3))
        >>> snapshot = ctx.run(directory.list_running, job_id)
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, Exception, float], None] | None = None
    sleep: Callable[[float], Any] = time.sleep
    attempt: int = field(default=0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    started_at: datetime = field(default_factory=utcnow, init=False)
    errors: list[tuple[int, Exception, datetime]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return self.attempt

    @property
    def elapsed_seconds(self) -> float:
        return (utcnow() - self.started_at).total_seconds()

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Execute ``func`` with retry logic.

        Raises:
            The last exception once the strategy refuses another attempt
        """
        while True:
            self.attempt += 1
            try:
                return func(*args, **kwargs)
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e, utcnow()))

                if not self.strategy.should_retry(self.attempt, e):
                    raise

                delay = self.strategy.next_delay(self.attempt - 1)

                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)

                self.sleep(delay)


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
]
