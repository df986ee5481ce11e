from __future__ import annotations

import asyncio
import random
from typing import Optional

from ..errors import RunCancelledError, TransientCapacityError


def compute_backoff(
    attempt: int, interval: float, base: float = 1.0, jitter: float = 0.0
) -> float:
    """Compute the delay before retry number ``attempt`` (1-based)."""
    delay = interval * base ** max(attempt - 1, 0)
    return delay + random.uniform(0, jitter) if jitter else delay


async def schedule_retry(
    delay: float, cancel_event: Optional[asyncio.Event] = None
) -> None:
    """Sleep for ``delay`` seconds, waking early if ``cancel_event`` is set."""
    if cancel_event is None:
        await asyncio.sleep(delay)
        return
    if cancel_event.is_set():
        raise RunCancelledError("Run cancelled")
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise RunCancelledError("Run cancelled")


class RetryPolicy:
    """Decides whether and when a failed attempt is retried.

    Only ``TransientCapacityError`` is retriable; any other error ends the
    loop immediately.
    """

    def __init__(
        self, max_attempts: int, interval_seconds: float, backoff: float = 1.0
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self.backoff = backoff

    def is_retriable(self, error: BaseException) -> bool:
        return isinstance(error, TransientCapacityError)

    def delay_for(self, attempt: int) -> float:
        return compute_backoff(attempt, self.interval_seconds, base=self.backoff)

    def next_delay(self, attempt: int, error: BaseException) -> Optional[float]:
        """Return the delay before the next attempt, or ``None`` to stop."""
        if not self.is_retriable(error) or attempt >= self.max_attempts:
            return None
        return self.delay_for(attempt)
