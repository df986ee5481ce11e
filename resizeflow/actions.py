"""Step action vocabulary and the handlers that implement it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

from .capacity import CapacityReservationProcedure
from .clients.base import ResourceClient
from .constants import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RESERVATION_TIMEOUT_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_INTERVAL_SECONDS,
    DEFAULT_START_TIMEOUT_SECONDS,
    DEFAULT_STOP_TIMEOUT_SECONDS,
    POWERSHELL_DOCUMENT,
    SHELL_DOCUMENT,
)
from .contracts import ActionType, RetrySpec, Step, ValueType, WaitSpec
from .errors import BindingError, ConfigurationError, RemoteCommandError
from .selectors import coerce
from .utils.retry import schedule_retry
from .waiter import Waiter

logger = logging.getLogger(__name__)


@dataclass
class ActionCall:
    """Everything a handler needs to perform one step."""

    client: ResourceClient
    step: Step
    inputs: Dict[str, Any]
    waiter: Waiter
    cancel_event: Optional[asyncio.Event] = None
    sleep: Callable[[float, Optional[asyncio.Event]], Awaitable[None]] = schedule_retry

    def text(self, name: str, default: Optional[str] = None) -> str:
        value = self.inputs.get(name, default)
        if value is None or value == "":
            if default is not None:
                return default
            raise BindingError(f"Step {self.step.name}: input {name} is empty")
        return coerce(value, ValueType.STRING)

    def number(self, name: str, default: float) -> float:
        value = self.inputs.get(name)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise BindingError(
                f"Step {self.step.name}: input {name}={value!r} is not a number"
            ) from None

    def strings(self, name: str, default: FrozenSet[str]) -> FrozenSet[str]:
        value = self.inputs.get(name)
        if value is None or value == []:
            return default
        return frozenset(coerce(value, ValueType.STRING_LIST))


Handler = Callable[[ActionCall], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ActionDefinition:
    action: ActionType
    handler: Handler
    required_inputs: FrozenSet[str] = frozenset()
    optional_inputs: FrozenSet[str] = frozenset()
    builtin_outputs: FrozenSet[str] = frozenset()
    waits: bool = False

    @property
    def accepted_inputs(self) -> FrozenSet[str]:
        return self.required_inputs | self.optional_inputs


def select_command_document(script_name: str) -> str:
    """Pick the run document from the script's file extension."""
    if PurePath(script_name or "").suffix.lower() == ".ps1":
        return POWERSHELL_DOCUMENT
    return SHELL_DOCUMENT


# ----------------------------------------------------------------------
# Handlers
async def _describe_resource(call: ActionCall) -> Dict[str, Any]:
    return await call.client.describe_instance(call.text("InstanceId"))


async def _create_reservation(call: ActionCall) -> Dict[str, Any]:
    attempts = call.number("MaxAttempts", DEFAULT_RETRY_ATTEMPTS)
    if attempts != int(attempts):
        raise BindingError(f"Step {call.step.name}: MaxAttempts must be a whole number")
    try:
        spec = RetrySpec(
            max_attempts=int(attempts),
            interval_seconds=call.number("IntervalSeconds", DEFAULT_RETRY_INTERVAL_SECONDS),
            backoff=call.number("Backoff", 1.0),
        )
    except ValueError as exc:
        raise BindingError(f"Step {call.step.name}: invalid retry settings: {exc}") from None
    procedure = CapacityReservationProcedure(call.client, spec, sleep=call.sleep)
    result = await procedure.acquire(
        instance_type=call.text("InstanceType"),
        platform=call.text("Platform"),
        availability_zone=call.text("AvailabilityZone"),
        tag=call.text("Tag"),
        cancel_event=call.cancel_event,
    )
    return {
        "Success": True,
        "CapacityReservationId": result.reservation_id,
        "Attempts": result.attempts,
    }


def _wait_spec(
    call: ActionCall, selector: str, desired: FrozenSet[str], timeout: float
) -> WaitSpec:
    try:
        return WaitSpec(
            property_selector=call.text("PropertySelector", selector),
            desired_values=call.strings("DesiredValues", desired),
            timeout_seconds=call.number(
                "TimeoutSeconds", call.step.timeout_seconds or timeout
            ),
            poll_interval_seconds=call.number(
                "PollIntervalSeconds", DEFAULT_POLL_INTERVAL_SECONDS
            ),
        )
    except ValueError as exc:
        raise BindingError(f"Step {call.step.name}: invalid wait settings: {exc}") from None


async def _verify_reservation(call: ActionCall) -> Dict[str, Any]:
    reservation_id = call.text("CapacityReservationId")
    spec = _wait_spec(
        call, "$.State", frozenset({"active"}), DEFAULT_RESERVATION_TIMEOUT_SECONDS
    )
    state = await call.waiter.wait_for(
        spec,
        lambda: call.client.describe_capacity_reservation(reservation_id),
        cancel_event=call.cancel_event,
    )
    return {"State": state, "CapacityReservationId": reservation_id}


def _instance_waiter(desired: str, timeout: float) -> Handler:
    async def _wait(call: ActionCall) -> Dict[str, Any]:
        instance_id = call.text("InstanceId")
        spec = _wait_spec(call, "$.State.Name", frozenset({desired}), timeout)
        state = await call.waiter.wait_for(
            spec,
            lambda: call.client.describe_instance(instance_id),
            cancel_event=call.cancel_event,
        )
        return {"State": state}

    return _wait


async def _run_remote_command(call: ActionCall) -> Dict[str, Any]:
    instance_id = call.text("InstanceId")
    script_name = call.text("ScriptName", "")
    commands = call.inputs.get("Commands")
    if isinstance(commands, str):
        commands = [commands]
    if not commands:
        raise BindingError(f"Step {call.step.name}: no commands to run")
    document = select_command_document(script_name)
    logger.info(
        f"Running {script_name or 'inline commands'} on {instance_id} via {document}"
    )
    result = await call.client.run_command(
        instance_id, document, [str(c) for c in commands]
    )
    status = result.get("Status", "Unknown")
    if status != "Success":
        raise RemoteCommandError(
            f"Command {result.get('CommandId')} on {instance_id} finished with status {status}",
            status=status,
            output=result.get("Output", ""),
        )
    return {**result, "DocumentName": document}


async def _stop_resource(call: ActionCall) -> Dict[str, Any]:
    return await call.client.stop_instance(call.text("InstanceId"))


async def _start_resource(call: ActionCall) -> Dict[str, Any]:
    return await call.client.start_instance(call.text("InstanceId"))


async def _modify_attribute(call: ActionCall) -> Dict[str, Any]:
    return await call.client.modify_instance_attribute(
        call.text("InstanceId"),
        call.text("Attribute", "InstanceType"),
        call.text("Value"),
    )


async def _cancel_reservation(call: ActionCall) -> Dict[str, Any]:
    reservation_id = call.text("CapacityReservationId")
    await call.client.cancel_capacity_reservation(reservation_id)
    logger.info(f"Cancelled capacity reservation {reservation_id}")
    return {"Success": True, "CapacityReservationId": reservation_id}


async def _end(call: ActionCall) -> Dict[str, Any]:
    return {}


_WAIT_INPUTS = frozenset(
    {"PropertySelector", "DesiredValues", "TimeoutSeconds", "PollIntervalSeconds"}
)

ACTIONS: Dict[ActionType, ActionDefinition] = {
    definition.action: definition
    for definition in (
        ActionDefinition(
            ActionType.DESCRIBE_RESOURCE,
            _describe_resource,
            required_inputs=frozenset({"InstanceId"}),
        ),
        ActionDefinition(
            ActionType.CREATE_RESERVATION,
            _create_reservation,
            required_inputs=frozenset(
                {"InstanceType", "Platform", "AvailabilityZone", "Tag"}
            ),
            optional_inputs=frozenset({"MaxAttempts", "IntervalSeconds", "Backoff"}),
            builtin_outputs=frozenset({"Success", "CapacityReservationId", "Attempts"}),
        ),
        ActionDefinition(
            ActionType.VERIFY_RESERVATION,
            _verify_reservation,
            required_inputs=frozenset({"CapacityReservationId"}),
            optional_inputs=_WAIT_INPUTS,
            builtin_outputs=frozenset({"State", "CapacityReservationId"}),
            waits=True,
        ),
        ActionDefinition(
            ActionType.RUN_REMOTE_COMMAND,
            _run_remote_command,
            required_inputs=frozenset({"InstanceId", "Commands"}),
            optional_inputs=frozenset({"ScriptName"}),
            builtin_outputs=frozenset({"CommandId", "Status", "Output", "DocumentName"}),
        ),
        ActionDefinition(
            ActionType.STOP_RESOURCE,
            _stop_resource,
            required_inputs=frozenset({"InstanceId"}),
        ),
        ActionDefinition(
            ActionType.WAIT_FOR_STOPPED,
            _instance_waiter("stopped", DEFAULT_STOP_TIMEOUT_SECONDS),
            required_inputs=frozenset({"InstanceId"}),
            optional_inputs=_WAIT_INPUTS,
            builtin_outputs=frozenset({"State"}),
            waits=True,
        ),
        ActionDefinition(
            ActionType.MODIFY_ATTRIBUTE,
            _modify_attribute,
            required_inputs=frozenset({"InstanceId", "Value"}),
            optional_inputs=frozenset({"Attribute"}),
        ),
        ActionDefinition(
            ActionType.START_RESOURCE,
            _start_resource,
            required_inputs=frozenset({"InstanceId"}),
        ),
        ActionDefinition(
            ActionType.WAIT_FOR_RUNNING,
            _instance_waiter("running", DEFAULT_START_TIMEOUT_SECONDS),
            required_inputs=frozenset({"InstanceId"}),
            optional_inputs=_WAIT_INPUTS,
            builtin_outputs=frozenset({"State"}),
            waits=True,
        ),
        ActionDefinition(
            ActionType.CANCEL_RESERVATION,
            _cancel_reservation,
            required_inputs=frozenset({"CapacityReservationId"}),
            builtin_outputs=frozenset({"Success", "CapacityReservationId"}),
        ),
        ActionDefinition(ActionType.END, _end),
    )
}


def get_action(action: ActionType) -> ActionDefinition:
    try:
        return ACTIONS[action]
    except KeyError:
        raise ConfigurationError(f"Unsupported action {action}") from None
