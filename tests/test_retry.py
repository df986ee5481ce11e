import asyncio

import pytest

from resizeflow.errors import ApiError, RunCancelledError, TransientCapacityError
from resizeflow.utils.retry import RetryPolicy, compute_backoff, schedule_retry


def test_compute_backoff_is_constant_without_base():
    assert [compute_backoff(n, 30.0) for n in (1, 2, 3)] == [30.0, 30.0, 30.0]


def test_compute_backoff_grows_geometrically():
    assert [compute_backoff(n, 2.0, base=2.0) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]


def test_compute_backoff_jitter_stays_in_range():
    delay = compute_backoff(1, 1.0, jitter=0.5)
    assert 1.0 <= delay <= 1.5


def test_policy_only_retries_transient_capacity_errors():
    policy = RetryPolicy(max_attempts=3, interval_seconds=1.0)
    assert policy.next_delay(1, TransientCapacityError("scarce")) == 1.0
    assert policy.next_delay(1, ApiError("denied")) is None
    assert policy.next_delay(1, RuntimeError("boom")) is None


def test_policy_stops_at_max_attempts():
    policy = RetryPolicy(max_attempts=2, interval_seconds=0)
    assert policy.next_delay(1, TransientCapacityError("scarce")) == 0
    assert policy.next_delay(2, TransientCapacityError("scarce")) is None


@pytest.mark.parametrize("attempts,interval", [(0, 1.0), (1, -1.0)])
def test_policy_rejects_invalid_settings(attempts, interval):
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=attempts, interval_seconds=interval)


@pytest.mark.asyncio
async def test_schedule_retry_sleeps_full_delay_without_event():
    loop = asyncio.get_running_loop()
    start = loop.time()
    await schedule_retry(0.05)
    assert loop.time() - start >= 0.04


@pytest.mark.asyncio
async def test_schedule_retry_returns_after_delay_when_event_unset():
    await schedule_retry(0.01, asyncio.Event())


@pytest.mark.asyncio
async def test_schedule_retry_wakes_early_when_cancelled():
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.01, event.set)
    with pytest.raises(RunCancelledError):
        await schedule_retry(10, event)


@pytest.mark.asyncio
async def test_schedule_retry_raises_if_already_cancelled():
    event = asyncio.Event()
    event.set()
    with pytest.raises(RunCancelledError):
        await schedule_retry(0, event)
