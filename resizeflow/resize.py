"""Instance resize workflow and its invocation surface."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from .builder import WorkflowBuilder
from .clients import ResourceClient, get_client
from .config import ResizeflowConfig, TunablesConfig, load_config
from .contracts import (
    ActionType,
    OnFailure,
    OutputSpec,
    RunResult,
    ValueType,
    Workflow,
)
from .engine import WorkflowEngine
from .persistence import RunRepository

logger = logging.getLogger(__name__)

SCRIPTS_DIR = Path(__file__).parent / "scripts"

OsFamily = Literal["linux", "windows"]


def default_script(phase: Literal["pre", "post"], os_family: OsFamily) -> Path:
    """Path of the bundled pre/post downtime script for ``os_family``."""
    suffix = "ps1" if os_family == "windows" else "sh"
    return SCRIPTS_DIR / f"{phase}_downtime_{os_family}.{suffix}"


def _remote_command_inputs(script: Path) -> Dict[str, Any]:
    return {
        "InstanceId": "{{ InstanceId }}",
        "ScriptName": script.name,
        "Commands": {"literal": [script.read_text()]},
    }


def build_resize_workflow(
    pre_script: Optional[Path] = None,
    post_script: Optional[Path] = None,
    os_family: OsFamily = "linux",
    reserve_capacity: bool = True,
    name: str = "ResizeInstanceAutomation",
) -> Workflow:
    """Build the resize workflow.

    Describe, reserve capacity (with retry), verify the reservation, run
    pre-downtime checks, stop, change the type, start, run post-downtime
    checks and release the reservation. Script contents are read here and
    shipped verbatim; the run document is chosen from each script's file
    extension.
    """
    pre_script = Path(pre_script) if pre_script else default_script("pre", os_family)
    post_script = Path(post_script) if post_script else default_script("post", os_family)
    tunables = TunablesConfig()

    builder = WorkflowBuilder(
        name, description="Resize an EC2 instance with OS-specific pre/post checks"
    )
    builder.add_parameter("InstanceId", description="ID of the instance to resize")
    builder.add_parameter("TargetInstanceType", description="Target instance type")
    builder.add_parameter(
        "ReservationName", description="Name tag for the capacity reservation", default=""
    )
    builder.add_parameter(
        "InstancePlatform",
        description="Reservation platform; defaults to the instance's platform",
        default="",
    )
    builder.add_parameter(
        "AvailabilityZone",
        description="Reservation zone; defaults to the instance's zone",
        default="",
    )
    builder.add_parameter(
        "RetryAttempts", ValueType.INTEGER, default=tunables.retry_attempts
    )
    builder.add_parameter(
        "RetryIntervalSeconds", ValueType.NUMBER, default=tunables.retry_interval_seconds
    )
    builder.add_parameter(
        "StopTimeoutSeconds", ValueType.NUMBER, default=tunables.stop_timeout_seconds
    )
    builder.add_parameter(
        "StartTimeoutSeconds", ValueType.NUMBER, default=tunables.start_timeout_seconds
    )
    builder.add_parameter(
        "ReservationTimeoutSeconds",
        ValueType.NUMBER,
        default=tunables.reservation_timeout_seconds,
    )
    builder.add_parameter(
        "PollIntervalSeconds", ValueType.NUMBER, default=tunables.poll_interval_seconds
    )

    builder.add_step(
        "DescribeInstance",
        ActionType.DESCRIBE_RESOURCE,
        inputs={"InstanceId": "{{ InstanceId }}"},
        outputs=[
            OutputSpec(name="InstanceType", selector="$.InstanceType"),
            OutputSpec(name="State", selector="$.State.Name"),
            OutputSpec(name="AvailabilityZone", selector="$.Placement.AvailabilityZone"),
            OutputSpec(name="Platform", selector="$.PlatformDetails"),
        ],
    )
    if reserve_capacity:
        builder.add_step(
            "CreateReservation",
            ActionType.CREATE_RESERVATION,
            inputs={
                "InstanceType": "{{ TargetInstanceType }}",
                "Platform": {
                    "firstOf": ["{{ InstancePlatform }}", "{{ DescribeInstance.Platform }}"]
                },
                "AvailabilityZone": {
                    "firstOf": [
                        "{{ AvailabilityZone }}",
                        "{{ DescribeInstance.AvailabilityZone }}",
                    ]
                },
                "Tag": {"firstOf": ["{{ ReservationName }}", "{{ InstanceId }}"]},
                "MaxAttempts": "{{ RetryAttempts }}",
                "IntervalSeconds": "{{ RetryIntervalSeconds }}",
            },
            compensate_with="CancelReservation",
        )
        builder.add_step(
            "VerifyReservation",
            ActionType.VERIFY_RESERVATION,
            inputs={
                "CapacityReservationId": "{{ CreateReservation.CapacityReservationId }}",
                "DesiredValues": ["active"],
                "TimeoutSeconds": "{{ ReservationTimeoutSeconds }}",
                "PollIntervalSeconds": "{{ PollIntervalSeconds }}",
            },
        )
    builder.add_step(
        "PreDowntimeChecks",
        ActionType.RUN_REMOTE_COMMAND,
        inputs=_remote_command_inputs(pre_script),
        on_failure=OnFailure.CONTINUE,
    )
    builder.add_step(
        "StopInstance",
        ActionType.STOP_RESOURCE,
        inputs={"InstanceId": "{{ InstanceId }}"},
    )
    builder.add_step(
        "WaitForInstanceStopped",
        ActionType.WAIT_FOR_STOPPED,
        inputs={
            "InstanceId": "{{ InstanceId }}",
            "TimeoutSeconds": "{{ StopTimeoutSeconds }}",
            "PollIntervalSeconds": "{{ PollIntervalSeconds }}",
        },
    )
    builder.add_step(
        "ModifyInstanceType",
        ActionType.MODIFY_ATTRIBUTE,
        inputs={
            "InstanceId": "{{ InstanceId }}",
            "Attribute": "InstanceType",
            "Value": "{{ TargetInstanceType }}",
        },
    )
    builder.add_step(
        "StartInstance",
        ActionType.START_RESOURCE,
        inputs={"InstanceId": "{{ InstanceId }}"},
    )
    builder.add_step(
        "WaitForInstanceRunning",
        ActionType.WAIT_FOR_RUNNING,
        inputs={
            "InstanceId": "{{ InstanceId }}",
            "TimeoutSeconds": "{{ StartTimeoutSeconds }}",
            "PollIntervalSeconds": "{{ PollIntervalSeconds }}",
        },
    )
    builder.add_step(
        "PostDowntimeChecks",
        ActionType.RUN_REMOTE_COMMAND,
        inputs=_remote_command_inputs(post_script),
        on_failure=OnFailure.CONTINUE,
    )
    if reserve_capacity:
        builder.add_step(
            "CancelReservation",
            ActionType.CANCEL_RESERVATION,
            inputs={
                "CapacityReservationId": "{{ CreateReservation.CapacityReservationId }}"
            },
            on_failure=OnFailure.CONTINUE,
        )
    builder.add_step("End", ActionType.END)
    return builder.build()


class ResizeRequest(BaseModel):
    """Caller-supplied settings for one resize run."""

    instance_id: str
    target_instance_type: str
    reservation_name: Optional[str] = None
    platform: Optional[str] = None
    availability_zone: Optional[str] = None
    retry_attempts: Optional[int] = Field(default=None, ge=1)
    retry_interval_seconds: Optional[float] = Field(default=None, ge=0)
    stop_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    start_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    reservation_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    poll_interval_seconds: Optional[float] = Field(default=None, gt=0)
    reserve_capacity: bool = True
    os_family: OsFamily = "linux"
    pre_script: Optional[Path] = None
    post_script: Optional[Path] = None

    def to_parameters(self, defaults: Optional[TunablesConfig] = None) -> Dict[str, Any]:
        """Workflow parameters, falling back to ``defaults`` for unset tunables."""
        defaults = defaults or TunablesConfig()

        def pick(name: str) -> Any:
            value = getattr(self, name)
            return getattr(defaults, name) if value is None else value

        parameters: Dict[str, Any] = {
            "InstanceId": self.instance_id,
            "TargetInstanceType": self.target_instance_type,
            "StopTimeoutSeconds": pick("stop_timeout_seconds"),
            "StartTimeoutSeconds": pick("start_timeout_seconds"),
            "PollIntervalSeconds": pick("poll_interval_seconds"),
        }
        if self.reserve_capacity:
            parameters.update(
                {
                    "ReservationName": self.reservation_name or "",
                    "InstancePlatform": self.platform or "",
                    "AvailabilityZone": self.availability_zone or "",
                    "RetryAttempts": pick("retry_attempts"),
                    "RetryIntervalSeconds": pick("retry_interval_seconds"),
                    "ReservationTimeoutSeconds": pick("reservation_timeout_seconds"),
                }
            )
        return parameters

    def build_workflow(self) -> Workflow:
        return build_resize_workflow(
            pre_script=self.pre_script,
            post_script=self.post_script,
            os_family=self.os_family,
            reserve_capacity=self.reserve_capacity,
        )


async def resize_instance(
    request: ResizeRequest,
    client: Optional[ResourceClient] = None,
    config: Optional[ResizeflowConfig] = None,
    repository: Optional[RunRepository] = None,
    cancel_event: Optional[asyncio.Event] = None,
    deadline_seconds: Optional[float] = None,
) -> RunResult:
    """Resize ``request.instance_id`` and return the run's terminal record."""
    config = config or load_config()
    client = client or get_client(config=config)
    workflow = request.build_workflow()
    engine = WorkflowEngine(client, repository=repository)
    logger.info(
        f"Resizing {request.instance_id} to {request.target_instance_type} "
        f"(reserve_capacity={request.reserve_capacity}, os={request.os_family})"
    )

    await client.connect()
    try:
        return await engine.run(
            workflow,
            request.to_parameters(config.defaults),
            cancel_event=cancel_event,
            deadline_seconds=deadline_seconds,
        )
    finally:
        await client.disconnect()
