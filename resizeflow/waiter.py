"""Polling of a resource property until it reaches a desired value."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .contracts import WaitSpec
from .errors import ApiError, RunCancelledError, WaitTimeoutError
from .selectors import select
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[Dict[str, Any]]]


class Waiter:
    """Polls a response document until a selected property matches.

    The first poll happens immediately. Between polls the waiter sleeps for
    the poll interval, clamped so that the last poll lands on the deadline.
    Once the deadline is reached without a match ``WaitTimeoutError`` is
    raised and no further polls are made. Each poll is bounded by the time
    left before the deadline, so a hung describe call cannot stall the wait.
    Cancelling the awaiting task, or setting ``cancel_event``, stops the loop
    at its next suspension point.
    """

    def __init__(
        self,
        sleep: Callable[[float, Optional[asyncio.Event]], Awaitable[None]] = schedule_retry,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._sleep = sleep
        self._clock = clock

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    async def wait_for(
        self,
        spec: WaitSpec,
        fetch: Fetch,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """Return the observed value once it is one of ``spec.desired_values``."""
        deadline = self._now() + spec.timeout_seconds
        polls = 0
        observed: Optional[str] = None
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelledError("Wait cancelled")
            remaining = deadline - self._now()
            # The poll at the deadline still gets one interval to answer.
            budget = remaining if remaining > 0 else spec.poll_interval_seconds
            try:
                document = await asyncio.wait_for(fetch(), timeout=budget)
            except asyncio.TimeoutError:
                raise self._timeout(
                    spec, observed, f"poll did not answer within {budget:.2f}s"
                ) from None
            polls += 1
            try:
                value = select(document, spec.property_selector)
            except ApiError:
                value = None
            observed = None if value is None else str(value)
            if observed is not None and observed in spec.desired_values:
                logger.debug(
                    f"{spec.property_selector} reached {observed!r} after {polls} poll(s)"
                )
                return observed

            remaining = deadline - self._now()
            if remaining <= 0:
                raise self._timeout(spec, observed, f"last value {observed!r}")
            logger.debug(
                f"{spec.property_selector} is {observed!r}; polling again in "
                f"{min(spec.poll_interval_seconds, remaining):.2f}s"
            )
            await self._sleep(min(spec.poll_interval_seconds, remaining), cancel_event)

    @staticmethod
    def _timeout(spec: WaitSpec, observed: Optional[str], detail: str) -> WaitTimeoutError:
        return WaitTimeoutError(
            f"{spec.property_selector} did not reach "
            f"{sorted(spec.desired_values)} within {spec.timeout_seconds}s ({detail})",
            last_value=observed,
        )
