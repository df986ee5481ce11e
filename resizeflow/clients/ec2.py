"""EC2 and SSM backed control plane client."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..constants import CAPACITY_ERROR_CODES
from ..errors import ApiError, TransientCapacityError
from .base import ResourceClient

logger = logging.getLogger(__name__)

_TERMINAL_COMMAND_STATUSES = {"Success", "Cancelled", "TimedOut", "Failed"}


def classify_client_error(exc: Exception) -> Exception:
    """Map a botocore exception onto the resizeflow error taxonomy."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "Unknown")
        message = error.get("Message") or str(exc)
        if code in CAPACITY_ERROR_CODES:
            return TransientCapacityError(message, code=code)
        return ApiError(f"{code}: {message}", code=code)
    return ApiError(str(exc))


class Ec2ResourceClient(ResourceClient):
    """Resource client that talks to EC2 and SSM through boto3.

    boto3 calls are blocking, so each one runs in a worker thread.
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        command_poll_interval: float = 2.0,
        command_timeout: float = 3600.0,
        session: Any = None,
    ) -> None:
        self.profile = profile
        self.region = region
        self.command_poll_interval = command_poll_interval
        self.command_timeout = command_timeout
        self._session = session
        self._ec2: Any = None
        self._ssm: Any = None

    async def connect(self) -> None:
        if self._ec2 is not None:
            return
        if self._session is None:
            self._session = boto3.Session(
                profile_name=self.profile, region_name=self.region
            )
        self._ec2 = self._session.client("ec2")
        self._ssm = self._session.client("ssm")
        logger.info(
            f"Connected to EC2/SSM (profile={self.profile}, region={self._session.region_name})"
        )

    async def disconnect(self) -> None:
        self._ec2 = None
        self._ssm = None

    async def _call(self, fn: Callable[..., Dict[str, Any]], **kwargs: Any) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise classify_client_error(exc) from exc

    async def _ec2_call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        await self.connect()
        return await self._call(getattr(self._ec2, operation), **kwargs)

    async def _ssm_call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        await self.connect()
        return await self._call(getattr(self._ssm, operation), **kwargs)

    # ------------------------------------------------------------------
    async def describe_instance(self, instance_id: str) -> Dict[str, Any]:
        response = await self._ec2_call("describe_instances", InstanceIds=[instance_id])
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return instance
        raise ApiError(
            f"The instance ID '{instance_id}' does not exist",
            code="InvalidInstanceID.NotFound",
        )

    async def stop_instance(self, instance_id: str) -> Dict[str, Any]:
        return await self._ec2_call("stop_instances", InstanceIds=[instance_id])

    async def start_instance(self, instance_id: str) -> Dict[str, Any]:
        return await self._ec2_call("start_instances", InstanceIds=[instance_id])

    async def modify_instance_attribute(
        self, instance_id: str, attribute: str, value: str
    ) -> Dict[str, Any]:
        return await self._ec2_call(
            "modify_instance_attribute",
            InstanceId=instance_id,
            **{attribute: {"Value": value}},
        )

    async def create_capacity_reservation(
        self,
        instance_type: str,
        platform: str,
        availability_zone: str,
        tag: str,
    ) -> Dict[str, Any]:
        response = await self._ec2_call(
            "create_capacity_reservation",
            InstanceType=instance_type,
            InstancePlatform=platform,
            AvailabilityZone=availability_zone,
            InstanceCount=1,
            EndDateType="unlimited",
            InstanceMatchCriteria="open",
            TagSpecifications=[
                {
                    "ResourceType": "capacity-reservation",
                    "Tags": [{"Key": "Name", "Value": tag}],
                }
            ],
        )
        return response["CapacityReservation"]

    async def cancel_capacity_reservation(self, reservation_id: str) -> Dict[str, Any]:
        return await self._ec2_call(
            "cancel_capacity_reservation", CapacityReservationId=reservation_id
        )

    async def describe_capacity_reservation(
        self, reservation_id: str
    ) -> Dict[str, Any]:
        response = await self._ec2_call(
            "describe_capacity_reservations", CapacityReservationIds=[reservation_id]
        )
        reservations = response.get("CapacityReservations", [])
        if not reservations:
            raise ApiError(
                f"Capacity reservation '{reservation_id}' does not exist",
                code="InvalidCapacityReservationId.NotFound",
            )
        return reservations[0]

    async def run_command(
        self, instance_id: str, document_name: str, commands: List[str]
    ) -> Dict[str, Any]:
        response = await self._ssm_call(
            "send_command",
            InstanceIds=[instance_id],
            DocumentName=document_name,
            Parameters={"commands": commands},
        )
        command_id = response["Command"]["CommandId"]
        logger.info(f"Sent {document_name} command {command_id} to {instance_id}")

        deadline = time.monotonic() + self.command_timeout
        while True:
            await asyncio.sleep(self.command_poll_interval)
            try:
                invocation = await self._ssm_call(
                    "get_command_invocation",
                    CommandId=command_id,
                    InstanceId=instance_id,
                )
            except ApiError as exc:
                # The invocation is not visible immediately after send_command.
                if exc.code != "InvocationDoesNotExist":
                    raise
                invocation = {"Status": "Pending"}
            status = invocation.get("Status", "Pending")
            if status in _TERMINAL_COMMAND_STATUSES:
                return {
                    "CommandId": command_id,
                    "Status": status,
                    "Output": invocation.get("StandardOutputContent", ""),
                    "ErrorOutput": invocation.get("StandardErrorContent", ""),
                }
            if time.monotonic() >= deadline:
                return {"CommandId": command_id, "Status": "TimedOut", "Output": ""}
