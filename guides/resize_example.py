"""Dry-run a resize against the in-memory control plane."""

import asyncio

from resizeflow import InMemoryResourceClient, ResizeRequest, TransientCapacityError, resize_instance
from resizeflow.config import ResizeflowConfig


async def main():
    """Resize a simulated instance whose first reservation attempt hits scarcity."""
    client = InMemoryResourceClient()
    client.add_instance("i-0123456789abcdef0", instance_type="t3.micro")
    client.fail_next(
        "create_capacity_reservation",
        TransientCapacityError("Insufficient capacity", code="InsufficientInstanceCapacity"),
    )

    request = ResizeRequest(
        instance_id="i-0123456789abcdef0",
        target_instance_type="m5.large",
        retry_interval_seconds=1,
        poll_interval_seconds=0.5,
    )
    result = await resize_instance(request, client=client, config=ResizeflowConfig())

    print(f"✅ Run {result.run_id} finished: {result.status.value}")
    print(f"📋 Steps: {' -> '.join(result.executed_steps)}")
    print(f"🔁 Reservation attempts: {result.context['CreateReservation']['Attempts']}")
    print(f"🖥️  Instance type now: {client.instances[request.instance_id].instance_type}")


if __name__ == "__main__":
    asyncio.run(main())
