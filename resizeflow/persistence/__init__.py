"""Run history for resizeflow workflows."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ResizeflowConfig, load_config
from .inmemory import InMemoryRunRepository
from .models import RunRecord, StepRecord
from .repository import RunRepository
from .sqlite import SQLiteRunRepository

_repository_instance: RunRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[ResizeflowConfig] = None
) -> RunRepository:
    """Factory function to obtain a run repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``RESIZEFLOW_DATABASE_URL``, or from
    loaded configuration. When no database is configured, an in-memory
    repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("RESIZEFLOW_DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemoryRunRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteRunRepository(path)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "StepRecord",
    "RunRecord",
    "RunRepository",
    "SQLiteRunRepository",
    "InMemoryRunRepository",
    "get_repository",
]
