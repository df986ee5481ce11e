import pytest

from resizeflow.clients import InMemoryResourceClient

INSTANCE_ID = "i-0123456789abcdef0"


@pytest.fixture
def client() -> InMemoryResourceClient:
    fake = InMemoryResourceClient()
    fake.add_instance(INSTANCE_ID, instance_type="t3.micro")
    return fake


@pytest.fixture
def fast_params() -> dict:
    """Resize parameters with delays short enough for tests."""
    return {
        "InstanceId": INSTANCE_ID,
        "TargetInstanceType": "m5.large",
        "RetryIntervalSeconds": 0,
        "PollIntervalSeconds": 0.01,
        "StopTimeoutSeconds": 1,
        "StartTimeoutSeconds": 1,
        "ReservationTimeoutSeconds": 1,
    }


@pytest.fixture
def recorded_sleeps():
    """Replacement sleep that records delays instead of waiting."""
    delays = []

    async def _sleep(delay, cancel_event=None):
        delays.append(delay)

    _sleep.delays = delays
    return _sleep
