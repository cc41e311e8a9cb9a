"""Run results and their persistent history in SQLite."""

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Optional

import aiosqlite
import structlog

logger = structlog.get_logger()


@dataclass
class RunResult:
    """Outcome of one workflow run."""
    workflow_name: str
    workflow_version: str
    success: bool
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    error: Optional[dict[str, Any]] = None
    actions: int = 0
    diagnostics: list[dict[str, str]] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    duration_ms: float = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def error_message(self) -> Optional[str]:
        return self.error.get("message") if self.error else None


class RunStore:
    """Keeps a history of workflow runs in SQLite."""

    def __init__(self, db_path: str = "./data/runs.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create tables."""
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                workflow_version TEXT,
                success INTEGER NOT NULL,
                error_json TEXT,
                actions INTEGER DEFAULT 0,
                diagnostics_json TEXT,
                started_at REAL NOT NULL,
                finished_at REAL,
                duration_ms REAL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_runs_workflow ON runs(workflow_name, started_at);
        """)
        await self._db.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def save_run(self, result: RunResult) -> None:
        """Insert or replace a run record."""
        async with self._lock:
            await self._db.execute("""
                INSERT OR REPLACE INTO runs
                (run_id, workflow_name, workflow_version, success, error_json,
                 actions, diagnostics_json, started_at, finished_at, duration_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                result.run_id,
                result.workflow_name,
                result.workflow_version,
                int(result.success),
                json.dumps(result.error) if result.error else None,
                result.actions,
                json.dumps(result.diagnostics),
                result.started_at,
                result.finished_at,
                result.duration_ms,
            ))
            await self._db.commit()
        logger.debug("run_saved", run_id=result.run_id, success=result.success)

    async def get_run(self, run_id: str) -> Optional[RunResult]:
        cursor = await self._db.execute(
            "SELECT * FROM runs WHERE run_id = ?",
            (run_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_result(row) if row else None

    async def list_runs(
        self,
        limit: int = 20,
        workflow_name: Optional[str] = None,
    ) -> list[RunResult]:
        """Most recent runs first."""
        if workflow_name:
            cursor = await self._db.execute(
                "SELECT * FROM runs WHERE workflow_name = ? ORDER BY started_at DESC LIMIT ?",
                (workflow_name, limit)
            )
        else:
            cursor = await self._db.execute(
                "SELECT * FROM runs ORDER BY started_at DESC LIMIT ?",
                (limit,)
            )
        rows = await cursor.fetchall()
        return [self._row_to_result(row) for row in rows]

    def _row_to_result(self, row: aiosqlite.Row) -> RunResult:
        return RunResult(
            run_id=row["run_id"],
            workflow_name=row["workflow_name"],
            workflow_version=row["workflow_version"] or "",
            success=bool(row["success"]),
            error=json.loads(row["error_json"]) if row["error_json"] else None,
            actions=row["actions"],
            diagnostics=json.loads(row["diagnostics_json"] or "[]"),
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            duration_ms=row["duration_ms"],
        )
