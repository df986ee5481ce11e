"""Repository abstraction for run history."""

from __future__ import annotations

from typing import Protocol

from .models import RunRecord


class RunRepository(Protocol):
    """Protocol for run history backends."""

    async def create_run(
        self, run_id: str, workflow_name: str, parameters: dict | None = None
    ) -> None:
        """Persist the start of a run."""

    async def mark_step_started(self, run_id: str, step_name: str) -> None:
        """Record start of a step."""

    async def mark_step_completed(
        self,
        run_id: str,
        step_name: str,
        status: str,
        output: dict | None = None,
    ) -> None:
        """Record completion of a step."""

    async def mark_run_completed(
        self,
        run_id: str,
        status: str,
        failing_step: str | None = None,
        error: str | None = None,
    ) -> None:
        """Record the terminal status of a run."""

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Retrieve a run by id."""

    async def list_runs(self) -> list[RunRecord]:
        """Return all recorded runs."""
