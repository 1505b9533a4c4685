"""Retry policy for transient upstream failures."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable

from sales_batch.domain.exceptions import (
    UpstreamConnectionError,
    UpstreamHttpError,
)


def is_retryable(error: BaseException) -> bool:
    """Only server errors and connection/timeout failures are transient."""

    if isinstance(error, UpstreamHttpError):
        return error.status >= 500
    return isinstance(error, UpstreamConnectionError)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy applied around each single-period call.

    ``attempt_number`` in :meth:`should_retry` counts attempts already made
    (1-based); :meth:`delay_for` takes the zero-based retry index, so the
    default schedule waits 1s, 2s and 4s before retries one to three.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.0
    random_fn: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be at least base_delay")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, error: BaseException, attempt_number: int) -> bool:
        if attempt_number > self.max_retries:
            return False
        return is_retryable(error)

    def delay_for(self, attempt_number: int) -> float:
        delay = min(self.base_delay * (2 ** max(attempt_number, 0)), self.max_delay)
        if self.jitter:
            delay = min(delay + delay * self.jitter * self.random_fn(), self.max_delay)
        return delay
