import pytest

from resizeflow.actions import ACTIONS, ActionCall, get_action, select_command_document
from resizeflow.contracts import ActionType, Step
from resizeflow.errors import BindingError, RemoteCommandError
from resizeflow.waiter import Waiter

INSTANCE_ID = "i-0123456789abcdef0"


@pytest.mark.parametrize(
    "script_name,document",
    [
        ("pre_downtime_windows.ps1", "AWS-RunPowerShellScript"),
        ("CHECK.PS1", "AWS-RunPowerShellScript"),
        ("pre_downtime_linux.sh", "AWS-RunShellScript"),
        ("", "AWS-RunShellScript"),
    ],
)
def test_select_command_document(script_name, document):
    assert select_command_document(script_name) == document


def test_every_action_has_a_definition():
    assert set(ACTIONS) == set(ActionType)
    assert get_action(ActionType.WAIT_FOR_STOPPED).waits
    assert not get_action(ActionType.STOP_RESOURCE).waits


def _call(client, action, inputs, **step_fields):
    step = Step(name="Step", action=action, inputs=inputs, is_end=True, **step_fields)
    return ActionCall(client=client, step=step, inputs=inputs, waiter=Waiter())


@pytest.mark.asyncio
async def test_remote_command_uses_powershell_for_ps1(client):
    call = _call(
        client,
        ActionType.RUN_REMOTE_COMMAND,
        {"InstanceId": INSTANCE_ID, "ScriptName": "check.ps1", "Commands": "Get-Date"},
    )

    result = await get_action(ActionType.RUN_REMOTE_COMMAND).handler(call)

    assert result["DocumentName"] == "AWS-RunPowerShellScript"
    assert client.calls[-1][1]["commands"] == ["Get-Date"]


@pytest.mark.asyncio
async def test_remote_command_failure_raises(client):
    client.set_command_result("Failed", "exit 1")
    call = _call(
        client,
        ActionType.RUN_REMOTE_COMMAND,
        {"InstanceId": INSTANCE_ID, "Commands": ["false"]},
    )

    with pytest.raises(RemoteCommandError) as excinfo:
        await get_action(ActionType.RUN_REMOTE_COMMAND).handler(call)

    assert excinfo.value.status == "Failed"
    assert excinfo.value.output == "exit 1"


@pytest.mark.asyncio
async def test_create_reservation_reports_attempts(client):
    call = _call(
        client,
        ActionType.CREATE_RESERVATION,
        {
            "InstanceType": "m5.large",
            "Platform": "Linux/UNIX",
            "AvailabilityZone": "us-east-1a",
            "Tag": "resize",
            "MaxAttempts": 2,
            "IntervalSeconds": 0,
        },
    )

    result = await get_action(ActionType.CREATE_RESERVATION).handler(call)

    assert result["Success"] is True
    assert result["Attempts"] == 1
    assert result["CapacityReservationId"].startswith("cr-")


@pytest.mark.asyncio
async def test_create_reservation_rejects_fractional_attempts(client):
    call = _call(
        client,
        ActionType.CREATE_RESERVATION,
        {
            "InstanceType": "m5.large",
            "Platform": "Linux/UNIX",
            "AvailabilityZone": "us-east-1a",
            "Tag": "resize",
            "MaxAttempts": 2.5,
        },
    )

    with pytest.raises(BindingError):
        await get_action(ActionType.CREATE_RESERVATION).handler(call)
    assert client.calls == []


@pytest.mark.asyncio
async def test_empty_required_input_raises(client):
    call = _call(client, ActionType.STOP_RESOURCE, {"InstanceId": ""})
    with pytest.raises(BindingError):
        await get_action(ActionType.STOP_RESOURCE).handler(call)


@pytest.mark.asyncio
async def test_wait_timeout_falls_back_to_step_timeout(client):
    client.add_instance("i-stuck", state="stopping")
    call = _call(
        client,
        ActionType.WAIT_FOR_STOPPED,
        {"InstanceId": "i-stuck", "PollIntervalSeconds": 0.01},
        timeout_seconds=0.05,
    )

    with pytest.raises(TimeoutError):
        await get_action(ActionType.WAIT_FOR_STOPPED).handler(call)
