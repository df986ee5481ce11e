import asyncio

import pytest

from resizeflow.capacity import CapacityReservationProcedure
from resizeflow.contracts import RetrySpec
from resizeflow.errors import (
    ApiError,
    CapacityExhaustedError,
    RunCancelledError,
    TransientCapacityError,
)

REQUEST = {
    "instance_type": "m5.large",
    "platform": "Linux/UNIX",
    "availability_zone": "us-east-1a",
    "tag": "resize-test",
}


def _scarce() -> TransientCapacityError:
    return TransientCapacityError(
        "Insufficient capacity", code="InsufficientInstanceCapacity"
    )


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures(client, recorded_sleeps):
    client.fail_next("create_capacity_reservation", _scarce(), _scarce())
    procedure = CapacityReservationProcedure(
        client, RetrySpec(max_attempts=3, interval_seconds=30), sleep=recorded_sleeps
    )

    result = await procedure.acquire(**REQUEST)

    assert result.attempts == 3
    assert result.reservation_id in client.reservations
    assert client.call_count("create_capacity_reservation") == 3
    assert recorded_sleeps.delays == [30, 30]


@pytest.mark.asyncio
async def test_first_success_does_not_sleep(client, recorded_sleeps):
    procedure = CapacityReservationProcedure(
        client, RetrySpec(max_attempts=5, interval_seconds=30), sleep=recorded_sleeps
    )

    result = await procedure.acquire(**REQUEST)

    assert result.attempts == 1
    assert recorded_sleeps.delays == []


@pytest.mark.asyncio
async def test_exhaustion_after_max_attempts(client, recorded_sleeps):
    client.fail_next("create_capacity_reservation", *[_scarce() for _ in range(5)])
    procedure = CapacityReservationProcedure(
        client, RetrySpec(max_attempts=5, interval_seconds=1), sleep=recorded_sleeps
    )

    with pytest.raises(CapacityExhaustedError) as excinfo:
        await procedure.acquire(**REQUEST)

    assert excinfo.value.attempts == 5
    assert isinstance(excinfo.value.last_error, TransientCapacityError)
    assert client.call_count("create_capacity_reservation") == 5
    # No sleep after the final attempt.
    assert recorded_sleeps.delays == [1, 1, 1, 1]


@pytest.mark.asyncio
async def test_non_retriable_error_is_raised_immediately(client, recorded_sleeps):
    client.fail_next(
        "create_capacity_reservation",
        ApiError("not authorized", code="UnauthorizedOperation"),
    )
    procedure = CapacityReservationProcedure(
        client, RetrySpec(max_attempts=5, interval_seconds=1), sleep=recorded_sleeps
    )

    with pytest.raises(ApiError) as excinfo:
        await procedure.acquire(**REQUEST)

    assert excinfo.value.code == "UnauthorizedOperation"
    assert client.call_count("create_capacity_reservation") == 1
    assert recorded_sleeps.delays == []


@pytest.mark.asyncio
async def test_backoff_multiplies_delays(client, recorded_sleeps):
    client.fail_next("create_capacity_reservation", _scarce(), _scarce())
    procedure = CapacityReservationProcedure(
        client,
        RetrySpec(max_attempts=3, interval_seconds=2, backoff=2),
        sleep=recorded_sleeps,
    )

    await procedure.acquire(**REQUEST)

    assert recorded_sleeps.delays == [2, 4]


@pytest.mark.asyncio
async def test_cancel_event_interrupts_retry_delay(client):
    client.fail_next("create_capacity_reservation", _scarce())
    procedure = CapacityReservationProcedure(
        client, RetrySpec(max_attempts=3, interval_seconds=60)
    )
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.01, event.set)

    with pytest.raises(RunCancelledError):
        await procedure.acquire(**REQUEST, cancel_event=event)

    assert client.call_count("create_capacity_reservation") == 1
