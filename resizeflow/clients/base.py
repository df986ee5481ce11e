"""Capability interface to the external control plane."""

from __future__ import annotations

import abc
from typing import Any, Dict, List


class ResourceClient(metaclass=abc.ABCMeta):
    """Abstract client used by every workflow action.

    Methods return plain response documents and raise
    ``TransientCapacityError`` or ``ApiError`` on failure.
    """

    async def connect(self) -> None:
        """Open sessions with the control plane (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Release sessions (no-op by default)."""
        pass

    @abc.abstractmethod
    async def describe_instance(self, instance_id: str) -> Dict[str, Any]:
        """Return the instance document."""
        raise NotImplementedError

    @abc.abstractmethod
    async def stop_instance(self, instance_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    async def start_instance(self, instance_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    async def modify_instance_attribute(
        self, instance_id: str, attribute: str, value: str
    ) -> Dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    async def create_capacity_reservation(
        self,
        instance_type: str,
        platform: str,
        availability_zone: str,
        tag: str,
    ) -> Dict[str, Any]:
        """Create a reservation; the result carries ``CapacityReservationId``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def cancel_capacity_reservation(self, reservation_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    async def describe_capacity_reservation(
        self, reservation_id: str
    ) -> Dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    async def run_command(
        self, instance_id: str, document_name: str, commands: List[str]
    ) -> Dict[str, Any]:
        """Run ``commands`` on the host; result has ``CommandId``, ``Status``, ``Output``."""
        raise NotImplementedError
