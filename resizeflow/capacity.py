"""Capacity reservation with bounded retry on transient scarcity."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .clients.base import ResourceClient
from .contracts import RetrySpec
from .errors import ApiError, CapacityExhaustedError
from .utils.retry import RetryPolicy, schedule_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    reservation_id: str
    attempts: int


class CapacityReservationProcedure:
    """Create a capacity reservation, retrying only on capacity errors.

    Success returns immediately. A non-transient error is raised after the
    attempt that produced it. When every attempt fails with a transient
    error, ``CapacityExhaustedError`` is raised with the attempt count.
    """

    def __init__(
        self,
        client: ResourceClient,
        spec: RetrySpec,
        sleep: Callable[[float, Optional[asyncio.Event]], Awaitable[None]] = schedule_retry,
    ) -> None:
        self._client = client
        self._policy = RetryPolicy(
            spec.max_attempts, spec.interval_seconds, backoff=spec.backoff
        )
        self._sleep = sleep

    async def acquire(
        self,
        instance_type: str,
        platform: str,
        availability_zone: str,
        tag: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ReservationResult:
        attempt = 0
        while True:
            attempt += 1
            logger.info(
                f"Requesting {instance_type} capacity in {availability_zone} "
                f"(attempt {attempt}/{self._policy.max_attempts})"
            )
            try:
                response = await self._client.create_capacity_reservation(
                    instance_type=instance_type,
                    platform=platform,
                    availability_zone=availability_zone,
                    tag=tag,
                )
            except Exception as exc:
                delay = self._policy.next_delay(attempt, exc)
                if delay is not None:
                    logger.warning(
                        f"Insufficient capacity on attempt {attempt}: {exc}; "
                        f"retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay, cancel_event)
                    continue
                if self._policy.is_retriable(exc):
                    logger.error(f"Capacity still unavailable after {attempt} attempt(s)")
                    raise CapacityExhaustedError(attempt, last_error=exc) from exc
                logger.error(f"Capacity reservation failed with non-retriable error: {exc}")
                raise

            reservation_id = response.get("CapacityReservationId")
            if not reservation_id:
                raise ApiError("CreateReservation response has no CapacityReservationId")
            logger.info(f"Reserved capacity {reservation_id} after {attempt} attempt(s)")
            return ReservationResult(reservation_id=reservation_id, attempts=attempt)
