"""Tests for configuration loading."""

import pytest

from resizeflow.clients import InMemoryResourceClient, get_client
from resizeflow.clients.ec2 import Ec2ResourceClient
from resizeflow.config import load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in (
        "RESIZEFLOW_CONFIG",
        "RESIZEFLOW_CLIENT",
        "RESIZEFLOW_DATABASE_URL",
        "AWS_PROFILE",
        "AWS_REGION",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_config_file():
    config = load_config()
    assert config.client.backend == "ec2"
    assert config.defaults.retry_attempts == 5
    assert config.defaults.retry_interval_seconds == 30.0
    assert config.database_url is None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
client:
  backend: inmemory
  aws_region: eu-west-1
defaults:
  retry_attempts: 7
  poll_interval_seconds: 1
database_url: sqlite:///tmp/runs.db
log_level: DEBUG
"""
    )
    monkeypatch.setenv("RESIZEFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.client.backend == "inmemory"
    assert config.client.aws_region == "eu-west-1"
    assert config.defaults.retry_attempts == 7
    assert config.defaults.poll_interval_seconds == 1
    assert config.database_url == "sqlite:///tmp/runs.db"
    assert config.log_level == "DEBUG"


def test_environment_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "resizeflow.yaml"
    config_path.write_text("client:\n  backend: ec2\n  aws_region: eu-west-1\n")
    monkeypatch.setenv("RESIZEFLOW_CLIENT", "INMEMORY")
    monkeypatch.setenv("AWS_REGION", "ap-southeast-2")
    monkeypatch.setenv("AWS_PROFILE", "ops")

    config = load_config()
    assert config.client.backend == "inmemory"
    assert config.client.aws_region == "ap-southeast-2"
    assert config.client.aws_profile == "ops"


def test_get_client_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("client:\n  backend: inmemory\n")
    monkeypatch.setenv("RESIZEFLOW_CONFIG", str(config_path))

    assert isinstance(get_client(), InMemoryResourceClient)


def test_get_client_builds_ec2_client_from_config():
    config = load_config()
    config.client.aws_profile = "ops"

    client = get_client("ec2", config=config)

    assert isinstance(client, Ec2ResourceClient)
    assert client.profile == "ops"
    assert client.region == "us-east-1"


def test_get_client_rejects_unknown_backend():
    with pytest.raises(ValueError):
        get_client("gcp")
