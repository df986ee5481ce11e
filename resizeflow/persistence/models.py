"""Data models for recorded run history."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class StepRecord(BaseModel):
    """Record of an individual step execution."""

    id: Optional[int] = None
    run_id: str
    step_name: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: Optional[str] = None
    output: Optional[dict[str, Any]] = None


class RunRecord(BaseModel):
    """Recorded workflow run."""

    run_id: str
    workflow_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    status: str = "in_progress"
    failing_step: Optional[str] = None
    error: Optional[str] = None
    steps: list[StepRecord] = Field(default_factory=list)
