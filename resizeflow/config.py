from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RESERVATION_TIMEOUT_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_INTERVAL_SECONDS,
    DEFAULT_START_TIMEOUT_SECONDS,
    DEFAULT_STOP_TIMEOUT_SECONDS,
)


class ClientConfig(BaseModel):
    """Control plane client settings."""

    backend: Literal["ec2", "inmemory"] = "ec2"
    aws_profile: Optional[str] = None
    aws_region: Optional[str] = "us-east-1"


class TunablesConfig(BaseModel):
    """Defaults applied to resize requests that do not override them."""

    retry_attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=1)
    retry_interval_seconds: float = Field(default=DEFAULT_RETRY_INTERVAL_SECONDS, ge=0)
    stop_timeout_seconds: float = Field(default=DEFAULT_STOP_TIMEOUT_SECONDS, gt=0)
    start_timeout_seconds: float = Field(default=DEFAULT_START_TIMEOUT_SECONDS, gt=0)
    reservation_timeout_seconds: float = Field(
        default=DEFAULT_RESERVATION_TIMEOUT_SECONDS, gt=0
    )
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)


class ResizeflowConfig(BaseModel):
    """Top-level configuration model."""

    client: ClientConfig = Field(default_factory=ClientConfig)
    defaults: TunablesConfig = Field(default_factory=TunablesConfig)
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ResizeflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to RESIZEFLOW_CONFIG env
            variable or 'resizeflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("RESIZEFLOW_CONFIG", "resizeflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ResizeflowConfig(**data)
    else:
        config = ResizeflowConfig()

    env_backend = os.getenv("RESIZEFLOW_CLIENT")
    if env_backend:
        config.client.backend = env_backend.lower()
    env_db_url = os.getenv("RESIZEFLOW_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if os.getenv("AWS_PROFILE"):
        config.client.aws_profile = os.environ["AWS_PROFILE"]
    if os.getenv("AWS_REGION"):
        config.client.aws_region = os.environ["AWS_REGION"]
    return config
