"""In-memory control plane for tests and dry runs."""

from __future__ import annotations

import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Tuple

from ..errors import ApiError
from .base import ResourceClient


@dataclass
class SimulatedInstance:
    instance_id: str
    instance_type: str
    state: str = "running"
    availability_zone: str = "us-east-1a"
    platform_details: str = "Linux/UNIX"

    def to_document(self) -> Dict[str, Any]:
        return {
            "InstanceId": self.instance_id,
            "InstanceType": self.instance_type,
            "State": {"Name": self.state},
            "Placement": {"AvailabilityZone": self.availability_zone},
            "PlatformDetails": self.platform_details,
        }


@dataclass
class SimulatedReservation:
    reservation_id: str
    instance_type: str
    platform: str
    availability_zone: str
    tag: str
    state: str = "pending"

    def to_document(self) -> Dict[str, Any]:
        return {
            "CapacityReservationId": self.reservation_id,
            "InstanceType": self.instance_type,
            "InstancePlatform": self.platform,
            "AvailabilityZone": self.availability_zone,
            "State": self.state,
            "Tags": [{"Key": "Name", "Value": self.tag}],
        }


class InMemoryResourceClient(ResourceClient):
    """Simulated EC2/SSM control plane.

    State transitions (``stopping -> stopped``, ``pending -> running``,
    ``pending -> active``) complete after ``transition_polls`` describe
    calls. Failures can be scripted per operation with :meth:`fail_next`.
    """

    def __init__(self, transition_polls: int = 1) -> None:
        self.transition_polls = transition_polls
        self.instances: Dict[str, SimulatedInstance] = {}
        self.reservations: Dict[str, SimulatedReservation] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._pending: Dict[str, Tuple[str, int]] = {}
        self._command_result: Tuple[str, str] = ("Success", "")
        self._reservation_seq = 0

    # ------------------------------------------------------------------
    # Test helpers
    def add_instance(
        self,
        instance_id: str,
        instance_type: str = "t3.micro",
        state: str = "running",
        availability_zone: str = "us-east-1a",
        platform_details: str = "Linux/UNIX",
    ) -> SimulatedInstance:
        instance = SimulatedInstance(
            instance_id=instance_id,
            instance_type=instance_type,
            state=state,
            availability_zone=availability_zone,
            platform_details=platform_details,
        )
        self.instances[instance_id] = instance
        return instance

    def fail_next(self, operation: str, *errors: Exception) -> None:
        """Queue ``errors`` to be raised by the next calls to ``operation``."""
        self._failures[operation].extend(errors)

    def set_command_result(self, status: str, output: str = "") -> None:
        self._command_result = (status, output)

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def operations(self) -> List[str]:
        return [name for name, _ in self.calls]

    # ------------------------------------------------------------------
    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))
        if self._failures[operation]:
            raise self._failures[operation].popleft()

    def _instance(self, instance_id: str) -> SimulatedInstance:
        try:
            return self.instances[instance_id]
        except KeyError:
            raise ApiError(
                f"The instance ID '{instance_id}' does not exist",
                code="InvalidInstanceID.NotFound",
            ) from None

    def _reservation(self, reservation_id: str) -> SimulatedReservation:
        try:
            return self.reservations[reservation_id]
        except KeyError:
            raise ApiError(
                f"Capacity reservation '{reservation_id}' does not exist",
                code="InvalidCapacityReservationId.NotFound",
            ) from None

    def _begin_transition(self, key: str, interim: str, final: str) -> str:
        if self.transition_polls <= 0:
            return final
        self._pending[key] = (final, self.transition_polls)
        return interim

    def _advance(self, key: str) -> Optional[str]:
        if key not in self._pending:
            return None
        final, remaining = self._pending[key]
        if remaining <= 1:
            del self._pending[key]
            return final
        self._pending[key] = (final, remaining - 1)
        return None

    # ------------------------------------------------------------------
    async def describe_instance(self, instance_id: str) -> Dict[str, Any]:
        self._record("describe_instance", instance_id=instance_id)
        instance = self._instance(instance_id)
        new_state = self._advance(instance_id)
        if new_state:
            instance.state = new_state
        return instance.to_document()

    async def stop_instance(self, instance_id: str) -> Dict[str, Any]:
        self._record("stop_instance", instance_id=instance_id)
        instance = self._instance(instance_id)
        previous = instance.state
        if previous == "running":
            instance.state = self._begin_transition(instance_id, "stopping", "stopped")
        elif previous not in ("stopping", "stopped"):
            raise ApiError(
                f"Instance {instance_id} cannot be stopped from state {previous}",
                code="IncorrectInstanceState",
            )
        return {
            "StoppingInstances": [
                {
                    "InstanceId": instance_id,
                    "PreviousState": {"Name": previous},
                    "CurrentState": {"Name": instance.state},
                }
            ]
        }

    async def start_instance(self, instance_id: str) -> Dict[str, Any]:
        self._record("start_instance", instance_id=instance_id)
        instance = self._instance(instance_id)
        previous = instance.state
        if previous == "stopped":
            instance.state = self._begin_transition(instance_id, "pending", "running")
        elif previous not in ("pending", "running"):
            raise ApiError(
                f"Instance {instance_id} cannot be started from state {previous}",
                code="IncorrectInstanceState",
            )
        return {
            "StartingInstances": [
                {
                    "InstanceId": instance_id,
                    "PreviousState": {"Name": previous},
                    "CurrentState": {"Name": instance.state},
                }
            ]
        }

    async def modify_instance_attribute(
        self, instance_id: str, attribute: str, value: str
    ) -> Dict[str, Any]:
        self._record(
            "modify_instance_attribute",
            instance_id=instance_id,
            attribute=attribute,
            value=value,
        )
        instance = self._instance(instance_id)
        if attribute != "InstanceType":
            return {}
        if instance.state != "stopped":
            raise ApiError(
                f"Instance {instance_id} must be stopped to change its type",
                code="IncorrectInstanceState",
            )
        instance.instance_type = value
        return {}

    async def create_capacity_reservation(
        self,
        instance_type: str,
        platform: str,
        availability_zone: str,
        tag: str,
    ) -> Dict[str, Any]:
        self._record(
            "create_capacity_reservation",
            instance_type=instance_type,
            platform=platform,
            availability_zone=availability_zone,
            tag=tag,
        )
        self._reservation_seq += 1
        reservation_id = f"cr-{self._reservation_seq:017x}"
        reservation = SimulatedReservation(
            reservation_id=reservation_id,
            instance_type=instance_type,
            platform=platform,
            availability_zone=availability_zone,
            tag=tag,
        )
        reservation.state = self._begin_transition(reservation_id, "pending", "active")
        self.reservations[reservation_id] = reservation
        return reservation.to_document()

    async def cancel_capacity_reservation(self, reservation_id: str) -> Dict[str, Any]:
        self._record("cancel_capacity_reservation", reservation_id=reservation_id)
        reservation = self._reservation(reservation_id)
        self._pending.pop(reservation_id, None)
        reservation.state = "cancelled"
        return {"Return": True}

    async def describe_capacity_reservation(
        self, reservation_id: str
    ) -> Dict[str, Any]:
        self._record("describe_capacity_reservation", reservation_id=reservation_id)
        reservation = self._reservation(reservation_id)
        new_state = self._advance(reservation_id)
        if new_state:
            reservation.state = new_state
        return reservation.to_document()

    async def run_command(
        self, instance_id: str, document_name: str, commands: List[str]
    ) -> Dict[str, Any]:
        self._record(
            "run_command",
            instance_id=instance_id,
            document_name=document_name,
            commands=list(commands),
        )
        self._instance(instance_id)
        status, output = self._command_result
        return {"CommandId": str(uuid.uuid4()), "Status": status, "Output": output}
