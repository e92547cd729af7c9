import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import aiosqlite

from bench_runner.models import BenchmarkRun, RunStatus, TestResult

DB_PATH = Path(__file__).parent.parent / "bench_runs.db"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS runs (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        model TEXT NOT NULL,
        system_prompt TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TEXT NOT NULL,
        total INTEGER,
        passed INTEGER,
        pass_rate REAL,
        avg_latency_ms INTEGER,
        avg_judge_score REAL,
        judge_model TEXT,
        categories TEXT,
        report TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS results (
        id TEXT PRIMARY KEY,
        run_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        test_id TEXT NOT NULL,
        prompt TEXT NOT NULL,
        category TEXT NOT NULL,
        expected TEXT NOT NULL,
        actual TEXT NOT NULL,
        passed INTEGER NOT NULL,
        errored INTEGER NOT NULL DEFAULT 0,
        latency_ms INTEGER,
        judge_score REAL,
        judge_reasoning TEXT,
        FOREIGN KEY (run_id) REFERENCES runs(id)
    )
    """,
)


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        yield db


async def create_tables(db: aiosqlite.Connection) -> None:
    for statement in SCHEMA:
        await db.execute(statement)
    await db.commit()


async def init_db() -> None:
    async with aiosqlite.connect(DB_PATH) as db:
        await create_tables(db)


async def insert_run(
    db: aiosqlite.Connection,
    name: str,
    model: str,
    system_prompt: str,
) -> str:
    run_id = str(uuid4())
    created_at = datetime.now(UTC).isoformat()
    await db.execute(
        """
        INSERT INTO runs (id, name, model, system_prompt, status, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (run_id, name, model, system_prompt, RunStatus.running, created_at),
    )
    await db.commit()
    return run_id


async def update_run_status(
    db: aiosqlite.Connection, run_id: str, status: RunStatus
) -> None:
    await db.execute(
        "UPDATE runs SET status = ? WHERE id = ?",
        (status, run_id),
    )
    await db.commit()


async def complete_run(
    db: aiosqlite.Connection, run_id: str, bench_run: BenchmarkRun, report: str
) -> None:
    summary = bench_run.summary
    categories = {name: stats.model_dump() for name, stats in bench_run.categories.items()}
    await db.execute(
        """
        UPDATE runs SET
            status = ?, total = ?, passed = ?, pass_rate = ?, avg_latency_ms = ?,
            avg_judge_score = ?, judge_model = ?, categories = ?, report = ?
        WHERE id = ?
        """,
        (
            bench_run.status,
            summary.total,
            summary.passed,
            summary.pass_rate,
            summary.avg_latency_ms,
            summary.avg_judge_score,
            summary.judge_model,
            json.dumps(categories),
            report,
            run_id,
        ),
    )
    await db.commit()


async def insert_result(
    db: aiosqlite.Connection,
    run_id: str,
    position: int,
    result: TestResult,
) -> None:
    await db.execute(
        """
        INSERT INTO results
            (id, run_id, position, test_id, prompt, category, expected, actual,
             passed, errored, latency_ms, judge_score, judge_reasoning)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            str(uuid4()),
            run_id,
            position,
            str(result.id),
            result.prompt,
            result.category,
            json.dumps(result.expected),
            result.actual,
            result.passed,
            result.errored,
            result.latency_ms,
            result.judge_score,
            result.judge_reasoning,
        ),
    )


async def fetch_run_by_id(
    db: aiosqlite.Connection, run_id: str
) -> aiosqlite.Row | None:
    async with db.execute(
        "SELECT * FROM runs WHERE id = ?", (run_id,)
    ) as cursor:
        return await cursor.fetchone()


async def fetch_all_runs(db: aiosqlite.Connection) -> list[aiosqlite.Row]:
    async with db.execute("""
        SELECT id, name, model, status, created_at, total, passed, pass_rate
        FROM runs
        ORDER BY created_at DESC
    """) as cursor:
        return list(await cursor.fetchall())


async def fetch_results_for_run(
    db: aiosqlite.Connection, run_id: str
) -> list[aiosqlite.Row]:
    async with db.execute(
        "SELECT * FROM results WHERE run_id = ? ORDER BY position",
        (run_id,),
    ) as cursor:
        return list(await cursor.fetchall())
