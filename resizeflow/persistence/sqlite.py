"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from .models import RunRecord, StepRecord
from .repository import RunRepository

_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    run_id TEXT PRIMARY KEY,
    workflow_name TEXT NOT NULL,
    parameters TEXT,
    status TEXT NOT NULL DEFAULT 'in_progress',
    failing_step TEXT,
    error TEXT
);
CREATE TABLE IF NOT EXISTS run_steps (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL REFERENCES runs (run_id),
    step_name TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    status TEXT,
    output TEXT
);
CREATE INDEX IF NOT EXISTS run_steps_by_run ON run_steps (run_id, id);
"""

_RUN_COLUMNS = "run_id, workflow_name, parameters, status, failing_step, error"
_STEP_COLUMNS = "id, run_id, step_name, started_at, completed_at, status, output"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteRunRepository(RunRepository):
    """Persist run history in a SQLite file.

    ``sqlite3`` is blocking, so every statement runs in a worker thread.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def _write(self, sql: str, params: Sequence[Any]) -> None:
        with self._conn:
            self._conn.execute(sql, params)

    def _read(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, params).fetchall()

    async def _run(self, fn, *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    @staticmethod
    def _step(row: sqlite3.Row) -> StepRecord:
        return StepRecord(
            id=row["id"],
            run_id=row["run_id"],
            step_name=row["step_name"],
            started_at=_parse_time(row["started_at"]),
            completed_at=_parse_time(row["completed_at"]),
            status=row["status"],
            output=json.loads(row["output"]) if row["output"] else None,
        )

    @staticmethod
    def _run_record(row: sqlite3.Row, steps: list[StepRecord]) -> RunRecord:
        return RunRecord(
            run_id=row["run_id"],
            workflow_name=row["workflow_name"],
            parameters=json.loads(row["parameters"] or "{}"),
            status=row["status"],
            failing_step=row["failing_step"],
            error=row["error"],
            steps=steps,
        )

    # ------------------------------------------------------------------
    async def create_run(
        self, run_id: str, workflow_name: str, parameters: dict | None = None
    ) -> None:
        await self._run(
            self._write,
            "INSERT INTO runs (run_id, workflow_name, parameters) VALUES (?, ?, ?)",
            (run_id, workflow_name, json.dumps(parameters or {}, default=str)),
        )

    async def mark_step_started(self, run_id: str, step_name: str) -> None:
        await self._run(
            self._write,
            "INSERT INTO run_steps (run_id, step_name, started_at) VALUES (?, ?, ?)",
            (run_id, step_name, _timestamp()),
        )

    async def mark_step_completed(
        self,
        run_id: str,
        step_name: str,
        status: str,
        output: dict | None = None,
    ) -> None:
        # Only the most recent open record for the step is closed.
        await self._run(
            self._write,
            "UPDATE run_steps SET completed_at = ?, status = ?, output = ? "
            "WHERE id = (SELECT MAX(id) FROM run_steps "
            "WHERE run_id = ? AND step_name = ? AND completed_at IS NULL)",
            (
                _timestamp(),
                status,
                json.dumps(output or {}, default=str),
                run_id,
                step_name,
            ),
        )

    async def mark_run_completed(
        self,
        run_id: str,
        status: str,
        failing_step: str | None = None,
        error: str | None = None,
    ) -> None:
        await self._run(
            self._write,
            "UPDATE runs SET status = ?, failing_step = ?, error = ? WHERE run_id = ?",
            (status, failing_step, error, run_id),
        )

    async def get_run(self, run_id: str) -> RunRecord | None:
        rows = await self._run(
            self._read, f"SELECT {_RUN_COLUMNS} FROM runs WHERE run_id = ?", (run_id,)
        )
        if not rows:
            return None
        step_rows = await self._run(
            self._read,
            f"SELECT {_STEP_COLUMNS} FROM run_steps WHERE run_id = ? ORDER BY id",
            (run_id,),
        )
        return self._run_record(rows[0], [self._step(r) for r in step_rows])

    async def list_runs(self) -> list[RunRecord]:
        rows = await self._run(self._read, f"SELECT {_RUN_COLUMNS} FROM runs ORDER BY rowid")
        return [self._run_record(row, []) for row in rows]
