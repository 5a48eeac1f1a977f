"""
Retry with exponential backoff — for transient network failures.

Delay doubles on every attempt up to ``max_delay`` with up to 30%
jitter added. Only exceptions listed in ``retry_on`` are retried;
anything else propagates on the first attempt.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """How many times to try and how long to wait in between."""

    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Seconds to sleep after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        jitter = random.uniform(0, delay * 0.3)
        return delay + jitter


class RetriesExhausted(Exception):
    """All attempts failed; ``last_error`` is the final exception."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")


def call_with_retry(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or the policy is used up.

    Raises:
        RetriesExhausted: When every attempt raised one of ``retry_on``.
    """
    attempts = max(1, policy.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            if attempt >= attempts:
                raise RetriesExhausted(attempt, exc) from exc
            delay = policy.delay(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s — retrying in %.1fs",
                label or "Operation", attempt, attempts, exc, delay,
            )
            sleep(delay)
    raise AssertionError("unreachable")
