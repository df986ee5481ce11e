"""In-memory implementation of the run repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from .models import RunRecord, StepRecord
from .repository import RunRepository


class InMemoryRunRepository(RunRepository):
    """Store run history in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, RunRecord] = {}
        self._step_id = 0

    # ------------------------------------------------------------------
    async def create_run(
        self, run_id: str, workflow_name: str, parameters: dict | None = None
    ) -> None:
        self._runs[run_id] = RunRecord(
            run_id=run_id,
            workflow_name=workflow_name,
            parameters=parameters or {},
        )

    async def mark_step_started(self, run_id: str, step_name: str) -> None:
        run = self._runs.get(run_id)
        if not run:
            return
        self._step_id += 1
        run.steps.append(
            StepRecord(
                id=self._step_id,
                run_id=run_id,
                step_name=step_name,
                started_at=datetime.now(timezone.utc),
            )
        )

    async def mark_step_completed(
        self,
        run_id: str,
        step_name: str,
        status: str,
        output: dict | None = None,
    ) -> None:
        run = self._runs.get(run_id)
        if not run:
            return
        for step in reversed(run.steps):
            if step.step_name == step_name and step.completed_at is None:
                step.completed_at = datetime.now(timezone.utc)
                step.status = status
                step.output = output or {}
                break

    async def mark_run_completed(
        self,
        run_id: str,
        status: str,
        failing_step: str | None = None,
        error: str | None = None,
    ) -> None:
        run = self._runs.get(run_id)
        if run:
            run.status = status
            run.failing_step = failing_step
            run.error = error

    async def get_run(self, run_id: str) -> RunRecord | None:
        return self._runs.get(run_id)

    async def list_runs(self) -> list[RunRecord]:
        return list(self._runs.values())
