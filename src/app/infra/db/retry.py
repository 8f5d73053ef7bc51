# src/app/infra/db/retry.py
"""
Retry-with-backoff policy shared by every persistence operation.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from src.app.infra import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _never(_: BaseException) -> bool:
    return False


@dataclass
class RetryPolicy:
    """
    Exponential backoff with jitter and capped attempts.

    Attempt ``n`` (1-based) that fails with a retryable error waits
    ``base_delay * 2 ** (n - 1)`` plus up to ``jitter`` of that, never more
    than ``max_delay`` seconds, before attempt ``n + 1``. The last failure is
    re-raised unchanged once ``max_attempts`` is reached or as soon as
    ``is_retryable`` says no.
    """
    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 5.0
    jitter: float = 0.3
    is_retryable: Callable[[BaseException], bool] = _never
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    rand: Callable[[], float] = field(default=random.random, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        exponential = self.base_delay * (2 ** (attempt - 1))
        return min(exponential + self.rand() * self.jitter * exponential, self.max_delay)

    def run(self, fn: Callable[[], T], operation: str) -> T:
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as error:
                if not self.is_retryable(error):
                    raise
                if attempt >= self.max_attempts:
                    metrics.track_retry_attempt(operation, attempt, metrics.OUTCOME_EXHAUSTED)
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed, will retry: attempt=%d/%d, next_retry_in=%.3fs, error=%s",
                    operation, attempt, self.max_attempts, delay, error,
                )
                metrics.track_retry_attempt(operation, attempt, metrics.OUTCOME_RETRYING)
                self.sleep(delay)
                attempt += 1
