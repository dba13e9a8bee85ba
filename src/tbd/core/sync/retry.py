"""
Capped exponential backoff for network git operations.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from tbd.core.sync.errors import NetworkTransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry budget for transient network failures.

    Attributes:
        max_attempts: Total attempts, including the first one
        initial_delay: Seconds to wait before the second attempt
        max_delay: Upper bound on any single wait
        multiplier: Growth factor between waits
    """

    max_attempts: int = 4
    initial_delay: float = 0.5
    max_delay: float = 8.0
    multiplier: float = 2.0

    def delays(self) -> list[float]:
        """Waits between attempts, e.g. [0.5, 1.0, 2.0] for four attempts."""
        delays = []
        delay = self.initial_delay
        for _ in range(max(self.max_attempts - 1, 0)):
            delays.append(min(delay, self.max_delay))
            delay *= self.multiplier
        return delays


def retry_transient(
    func: Callable[[], T],
    policy: RetryPolicy,
    operation: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call func, retrying on NetworkTransientError within the policy budget.

    Any other exception propagates immediately. When the budget is used up
    the last NetworkTransientError is raised.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except NetworkTransientError as e:
            if attempt > len(delays):
                logger.error("%s failed after %d attempts: %s", operation, attempt, e)
                raise
            wait = delays[attempt - 1]
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                operation,
                attempt,
                policy.max_attempts,
                wait,
                e.stderr or e,
            )
            sleep(wait)
