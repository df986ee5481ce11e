"""Resource client factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ResizeflowConfig, load_config
from .base import ResourceClient
from .inmemory import InMemoryResourceClient


def get_client(
    backend: Optional[str] = None, config: Optional[ResizeflowConfig] = None
) -> ResourceClient:
    """Factory function to get the configured resource client."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("RESIZEFLOW_CLIENT")
        or config.client.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryResourceClient()
    elif backend == "ec2":
        from .ec2 import Ec2ResourceClient

        return Ec2ResourceClient(
            profile=config.client.aws_profile,
            region=config.client.aws_region,
        )
    else:
        raise ValueError(f"Unsupported client backend: {backend}")


__all__ = ["ResourceClient", "InMemoryResourceClient", "get_client"]
