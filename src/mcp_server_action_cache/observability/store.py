"""SQLite-based run store for persistence and history."""

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import RunNotFound
from .models import RunRecord, RunStatus

# Columns that update_run() may write
_UPDATABLE_FIELDS = frozenset({"status", "url", "started_at", "completed_at", "result", "cost"})


class RunStore:
    """Async SQLite store for automation runs.

    Log lines live in their own append-only table so concurrent appends
    never rewrite each other.
    """

    def __init__(self, db_path: Path | None = None):
        """Initialize RunStore.

        Args:
            db_path: Path to SQLite database. Defaults to the configured cache database.
        """
        if db_path is None:
            from ..config import settings

            db_path = settings.cache.get_db_path()
        self.db_path = db_path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        # Concurrent callers can race and lock the DB on PRAGMAs/DDL.
        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode = WAL")
                await db.execute("PRAGMA busy_timeout = 5000")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS runs (
                        run_id TEXT PRIMARY KEY,
                        instruction TEXT NOT NULL,
                        url TEXT,
                        status TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        started_at TEXT,
                        completed_at TEXT,
                        result TEXT,
                        cost INTEGER DEFAULT 0
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS run_logs (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        run_id TEXT NOT NULL,
                        line TEXT NOT NULL
                    )
                """)

                await db.execute("CREATE INDEX IF NOT EXISTS idx_runs_created_at ON runs(created_at)")
                await db.execute("CREATE INDEX IF NOT EXISTS idx_run_logs_run_id ON run_logs(run_id)")
                await db.commit()

            self._initialized = True

    async def create_run(self, run: RunRecord) -> RunRecord:
        """Insert a new run record."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO runs (
                    run_id, instruction, url, status, created_at, started_at, completed_at, result, cost
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    run.run_id,
                    run.instruction,
                    run.url,
                    run.status.value,
                    run.created_at.isoformat(),
                    run.started_at.isoformat() if run.started_at else None,
                    run.completed_at.isoformat() if run.completed_at else None,
                    json.dumps(run.result) if run.result is not None else None,
                    run.cost,
                ),
            )
            await db.executemany(
                "INSERT INTO run_logs (run_id, line) VALUES (?, ?)",
                [(run.run_id, line) for line in run.logs],
            )
            await db.commit()
        return run

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Get a single run by ID, logs included."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM runs WHERE run_id = ?", (run_id,)) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            async with db.execute("SELECT line FROM run_logs WHERE run_id = ? ORDER BY seq", (run_id,)) as cursor:
                logs = [r["line"] for r in await cursor.fetchall()]
        return self._row_to_run(row, logs)

    async def list_runs(self, limit: int = 50) -> list[RunRecord]:
        """List the most recent runs, newest first. Logs are not loaded."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM runs ORDER BY created_at DESC LIMIT ?", (limit,)) as cursor:
                rows = await cursor.fetchall()
        return [self._row_to_run(row, []) for row in rows]

    async def update_run(self, run_id: str, **fields: Any) -> RunRecord:
        """Apply a partial update to a run and return the updated record.

        Raises:
            RunNotFound: If no run has this ID
            ValueError: If a field is not updatable
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update run fields: {sorted(unknown)}")

        await self.initialize()

        columns: list[str] = []
        values: list[Any] = []
        for name, value in fields.items():
            columns.append(f"{name} = ?")
            values.append(self._encode_field(name, value))

        if columns:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(f"UPDATE runs SET {', '.join(columns)} WHERE run_id = ?", (*values, run_id))
                await db.commit()
                if cursor.rowcount == 0:
                    raise RunNotFound(f"Run '{run_id}' not found")

        run = await self.get_run(run_id)
        if run is None:
            raise RunNotFound(f"Run '{run_id}' not found")
        return run

    async def append_log(self, run_id: str, line: str) -> None:
        """Append one trace line to a run's log."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("INSERT INTO run_logs (run_id, line) VALUES (?, ?)", (run_id, line))
            await db.commit()

    @staticmethod
    def _encode_field(name: str, value: Any) -> Any:
        if value is None:
            return None
        if name == "status":
            return RunStatus(value).value
        if name in ("started_at", "completed_at"):
            return value.isoformat() if isinstance(value, datetime) else str(value)
        if name == "result":
            return json.dumps(value, default=str)
        return value

    @staticmethod
    def _row_to_run(row: aiosqlite.Row, logs: list[str]) -> RunRecord:
        """Convert DB row to RunRecord."""
        result: dict[str, Any] | None = None
        if row["result"]:
            try:
                loaded = json.loads(row["result"])
            except json.JSONDecodeError:
                loaded = {"error": row["result"]}
            result = loaded if isinstance(loaded, dict) else {"data": loaded}

        return RunRecord(
            run_id=row["run_id"],
            instruction=row["instruction"],
            url=row["url"],
            status=RunStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            started_at=datetime.fromisoformat(row["started_at"]) if row["started_at"] else None,
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
            logs=logs,
            result=result,
            cost=row["cost"] or 0,
        )


def utcnow() -> datetime:
    return datetime.now(UTC)


# Singleton instance for server use
_run_store: RunStore | None = None


def get_run_store() -> RunStore:
    """Get the singleton RunStore instance."""
    global _run_store
    if _run_store is None:
        _run_store = RunStore()
    return _run_store
