import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import aiosqlite
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from api.database import (
    DB_PATH,
    complete_run,
    fetch_all_runs,
    fetch_results_for_run,
    fetch_run_by_id,
    get_db,
    insert_result,
    insert_run,
    update_run_status,
)
from api.schemas import (
    ResultResponse,
    RunCreatedResponse,
    RunDetailResponse,
    RunRequest,
    RunSummaryResponse,
)
from bench_runner.config import BenchmarkConfig, load_judge_config
from bench_runner.inference import LlamaCppInference
from bench_runner.judge import JudgeClient
from bench_runner.models import MatchMode, RunStatus
from bench_runner.report import build_report
from bench_runner.runner import run_benchmark

logger = logging.getLogger(__name__)

router = APIRouter()

Db = Annotated[aiosqlite.Connection, Depends(get_db)]


def _build_config(request: RunRequest) -> BenchmarkConfig:
    if request.preset:
        return BenchmarkConfig.from_preset(request.preset, timeout_ms=request.timeout_ms)
    return BenchmarkConfig(timeout_ms=request.timeout_ms)


def _build_judge(request: RunRequest) -> JudgeClient | None:
    if not any(tc.match == MatchMode.llm_judge for tc in request.test_cases):
        return None
    judge_config = load_judge_config()
    if judge_config is None:
        return None
    return JudgeClient(judge_config, timeout_ms=request.timeout_ms)


async def _run_benchmark_background(run_id: str, request: RunRequest) -> None:
    model_path = Path(request.model_path)
    try:
        bench_run = await asyncio.to_thread(
            run_benchmark,
            request.test_cases,
            model=str(model_path),
            infer=LlamaCppInference(model_path),
            config=_build_config(request),
            judge=_build_judge(request),
            system_prompt=request.system_prompt,
        )
    except Exception:
        logger.exception("Benchmark run %s failed", run_id)
        bench_run = None

    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        if bench_run is None:
            await update_run_status(db, run_id, RunStatus.failed)
            return
        for position, result in enumerate(bench_run.results):
            await insert_result(db, run_id, position, result)
        await complete_run(db, run_id, bench_run, build_report(bench_run))


@router.post("/runs", response_model=RunCreatedResponse, status_code=202)
async def create_run(
    request: RunRequest,
    background_tasks: BackgroundTasks,
    db: Db,
) -> RunCreatedResponse:
    run_id = await insert_run(
        db,
        name=request.name,
        model=request.model_path,
        system_prompt=request.system_prompt,
    )
    background_tasks.add_task(_run_benchmark_background, run_id, request)
    return RunCreatedResponse(id=run_id, name=request.name, status=RunStatus.running)


@router.get("/runs", response_model=list[RunSummaryResponse])
async def list_runs(db: Db) -> list[RunSummaryResponse]:
    rows = await fetch_all_runs(db)
    return [
        RunSummaryResponse(
            id=row["id"],
            name=row["name"],
            model=row["model"],
            status=row["status"],
            created_at=row["created_at"],
            total=row["total"],
            passed=row["passed"],
            pass_rate=row["pass_rate"],
        )
        for row in rows
    ]


@router.get("/runs/{run_id}", response_model=RunDetailResponse)
async def get_run(run_id: str, db: Db) -> RunDetailResponse:
    run = await fetch_run_by_id(db, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")

    result_rows = await fetch_results_for_run(db, run_id)
    total, passed = run["total"], run["passed"]

    return RunDetailResponse(
        id=run["id"],
        name=run["name"],
        model=run["model"],
        system_prompt=run["system_prompt"],
        status=run["status"],
        created_at=run["created_at"],
        results=[
            ResultResponse(
                test_id=r["test_id"],
                prompt=r["prompt"],
                category=r["category"],
                expected=json.loads(r["expected"]),
                actual=r["actual"],
                passed=bool(r["passed"]),
                errored=bool(r["errored"]),
                latency_ms=r["latency_ms"],
                judge_score=r["judge_score"],
                judge_reasoning=r["judge_reasoning"],
            )
            for r in result_rows
        ],
        categories=json.loads(run["categories"]) if run["categories"] else {},
        total=total,
        passed=passed,
        failed=total - passed if total is not None else None,
        pass_rate=run["pass_rate"],
        avg_latency_ms=run["avg_latency_ms"],
        avg_judge_score=run["avg_judge_score"],
        judge_model=run["judge_model"],
    )


@router.get("/runs/{run_id}/report", response_class=PlainTextResponse)
async def get_run_report(run_id: str, db: Db) -> PlainTextResponse:
    run = await fetch_run_by_id(db, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    if run["report"] is None:
        raise HTTPException(status_code=404, detail="Report not available yet")
    return PlainTextResponse(run["report"], media_type="text/markdown")
