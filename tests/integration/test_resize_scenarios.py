"""End-to-end resize runs against the in-memory control plane."""

import pytest

from resizeflow import (
    ResizeRequest,
    RunStatus,
    TransientCapacityError,
    WorkflowEngine,
    build_resize_workflow,
    resize_instance,
)
from resizeflow.config import ResizeflowConfig
from resizeflow.errors import ErrorKind
from resizeflow.persistence import SQLiteRunRepository

INSTANCE_ID = "i-0123456789abcdef0"


def _scarce(count):
    return [
        TransientCapacityError("Insufficient capacity", code="InsufficientInstanceCapacity")
        for _ in range(count)
    ]


@pytest.mark.asyncio
async def test_reservation_succeeds_on_third_attempt(client, fast_params):
    client.fail_next("create_capacity_reservation", *_scarce(2))
    params = dict(fast_params, RetryAttempts=3)

    result = await WorkflowEngine(client).run(build_resize_workflow(), params)

    assert result.status == RunStatus.SUCCEEDED
    assert client.call_count("create_capacity_reservation") == 3
    assert result.context["CreateReservation"]["Attempts"] == 3
    reservation_id = result.context["CreateReservation"]["CapacityReservationId"]
    assert reservation_id in client.reservations
    assert client.operations() == [
        "describe_instance",
        "create_capacity_reservation",
        "create_capacity_reservation",
        "create_capacity_reservation",
        "describe_capacity_reservation",
        "run_command",
        "stop_instance",
        "describe_instance",
        "modify_instance_attribute",
        "start_instance",
        "describe_instance",
        "run_command",
        "cancel_capacity_reservation",
    ]
    assert client.instances[INSTANCE_ID].instance_type == "m5.large"
    assert client.instances[INSTANCE_ID].state == "running"


@pytest.mark.asyncio
async def test_exhausted_capacity_aborts_before_downtime(client, fast_params):
    client.fail_next("create_capacity_reservation", *_scarce(5))

    result = await WorkflowEngine(client).run(build_resize_workflow(), fast_params)

    assert result.status == RunStatus.ABORTED
    assert result.failing_step == "CreateReservation"
    assert result.error.kind == ErrorKind.CAPACITY_EXHAUSTED
    assert client.call_count("create_capacity_reservation") == 5
    for operation in ("run_command", "stop_instance", "modify_instance_attribute", "start_instance"):
        assert client.call_count(operation) == 0
    assert result.compensated_steps == []
    assert client.instances[INSTANCE_ID].instance_type == "t3.micro"


@pytest.mark.asyncio
async def test_failed_pre_checks_do_not_block_resize(client, fast_params):
    client.set_command_result("Failed", "service unhealthy")

    result = await WorkflowEngine(client).run(build_resize_workflow(), fast_params)

    assert result.status == RunStatus.SUCCEEDED
    assert "PreDowntimeChecks" in result.step_errors
    assert result.context["PreDowntimeChecks"]["Error"]
    assert result.executed_steps[-1] == "End"
    assert client.call_count("stop_instance") == 1


@pytest.mark.asyncio
async def test_reservation_uses_described_platform_and_zone(client, fast_params):
    client.instances[INSTANCE_ID].availability_zone = "us-east-1c"
    client.instances[INSTANCE_ID].platform_details = "Windows"

    await WorkflowEngine(client).run(build_resize_workflow(), fast_params)

    _, request = next(c for c in client.calls if c[0] == "create_capacity_reservation")
    assert request["availability_zone"] == "us-east-1c"
    assert request["platform"] == "Windows"
    assert request["tag"] == INSTANCE_ID


@pytest.mark.asyncio
async def test_explicit_reservation_settings_win(client, fast_params):
    params = dict(
        fast_params,
        ReservationName="nightly-resize",
        InstancePlatform="Linux/UNIX",
        AvailabilityZone="us-east-1b",
    )

    await WorkflowEngine(client).run(build_resize_workflow(), params)

    _, request = next(c for c in client.calls if c[0] == "create_capacity_reservation")
    assert request["availability_zone"] == "us-east-1b"
    assert request["tag"] == "nightly-resize"


@pytest.mark.asyncio
async def test_resize_instance_records_history(client, tmp_path):
    repository = SQLiteRunRepository(tmp_path / "runs.db")
    request = ResizeRequest(
        instance_id=INSTANCE_ID,
        target_instance_type="c5.large",
        retry_interval_seconds=0,
        poll_interval_seconds=0.01,
        os_family="windows",
    )

    result = await resize_instance(
        request, client=client, config=ResizeflowConfig(), repository=repository
    )

    assert result.succeeded
    assert client.instances[INSTANCE_ID].instance_type == "c5.large"
    documents = {kw["document_name"] for op, kw in client.calls if op == "run_command"}
    assert documents == {"AWS-RunPowerShellScript"}
    record = await repository.get_run(result.run_id)
    assert record.status == "Succeeded"
    assert record.parameters["TargetInstanceType"] == "c5.large"
    assert len(record.steps) == len(result.executed_steps)


@pytest.mark.asyncio
async def test_custom_scripts_are_shipped_verbatim(client, tmp_path):
    pre = tmp_path / "drain.sh"
    pre.write_text('echo "draining {{ connections }}"\n')
    request = ResizeRequest(
        instance_id=INSTANCE_ID,
        target_instance_type="m5.large",
        reserve_capacity=False,
        pre_script=pre,
        poll_interval_seconds=0.01,
    )

    result = await resize_instance(request, client=client, config=ResizeflowConfig())

    assert result.succeeded
    first_command = next(kw for op, kw in client.calls if op == "run_command")
    assert first_command["commands"] == ['echo "draining {{ connections }}"\n']
    assert first_command["document_name"] == "AWS-RunShellScript"
    assert client.call_count("create_capacity_reservation") == 0
