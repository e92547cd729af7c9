import json
import logging
import time
from collections.abc import Callable
from concurrent.futures import Executor
from pathlib import Path

from pydantic import ValidationError

from bench_runner.config import BENCHMARKS_DIR, PROJECT_DIR, BenchmarkConfig, load_judge_config
from bench_runner.deadline import DaemonThreadExecutor, call_with_deadline
from bench_runner.errors import DatasetError, InferenceTimeout, ReportWriteError
from bench_runner.inference import LlamaCppInference, build_prompt
from bench_runner.judge import JudgeClient, grade_with_judge
from bench_runner.matching import evaluate
from bench_runner.models import (
    BenchmarkRun,
    CategoryStats,
    Failure,
    InferenceResponse,
    MatchMode,
    RunStatus,
    Summary,
    TestCase,
    TestResult,
)
from bench_runner.report import build_report

logger = logging.getLogger(__name__)

MODELS_DIR = PROJECT_DIR / "models"
SAMPLE_TESTS = [
    {
        "id": 1,
        "prompt": "list all files",
        "acceptable": ["ls", "ls -la", "ls -a", "ls -l"],
        "category": "basic",
        "match": "semantic",
    },
    {
        "id": 2,
        "prompt": "show current directory",
        "acceptable": ["pwd"],
        "category": "basic",
        "match": "starts_with",
    },
]

Inference = Callable[[str, BenchmarkConfig], InferenceResponse]


def load_test_cases(path: Path) -> list[TestCase]:
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(SAMPLE_TESTS, f, indent=2)
        raise DatasetError(f"No benchmark dataset found. Created sample at {path}")

    try:
        with open(path) as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise DatasetError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, list):
        raise DatasetError(f"Expected a JSON array, got {type(raw).__name__}")

    try:
        tests = [TestCase.model_validate(tc) for tc in raw]
    except ValidationError as e:
        raise DatasetError(f"Invalid test definition in {path}: {e}") from e

    seen: set[int | str] = set()
    for tc in tests:
        if tc.id in seen:
            raise DatasetError(f"Duplicate test id {tc.id!r} in {path}")
        seen.add(tc.id)
    return tests


def find_latest_model(models_dir: Path = MODELS_DIR) -> Path:
    models = sorted(models_dir.glob("*.gguf"), key=lambda p: p.stat().st_mtime, reverse=True)
    if not models:
        raise FileNotFoundError(f"No exported .gguf models found in {models_dir}")
    return models[0]


def _error_result(test: TestCase, message: str, latency_ms: int | None) -> TestResult:
    return TestResult(
        id=test.id,
        prompt=test.prompt,
        expected=test.acceptable,
        actual=f"Error: {message}",
        passed=False,
        category=test.category,
        errored=True,
        latency_ms=latency_ms,
    )


def run_test_case(
    test: TestCase,
    infer: Inference,
    config: BenchmarkConfig,
    executor: Executor,
    system_prompt: str = "",
    judge: JudgeClient | None = None,
) -> TestResult:
    start = time.monotonic()
    try:
        response = call_with_deadline(
            executor, config.timeout_ms, infer, build_prompt(system_prompt, test.prompt), config
        )
    except TimeoutError:
        latency_ms = int((time.monotonic() - start) * 1000)
        error = InferenceTimeout(config.timeout_ms)
        logger.warning("Test %s: %s", test.id, error)
        return _error_result(test, str(error), latency_ms)
    except Exception as e:
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.warning("Test %s failed before grading: %s", test.id, e)
        return _error_result(test, str(e) or type(e).__name__, latency_ms)
    latency_ms = int((time.monotonic() - start) * 1000)

    actual = response.text.strip()
    fields = dict(
        id=test.id,
        prompt=test.prompt,
        expected=test.acceptable,
        actual=actual,
        category=test.category,
        latency_ms=latency_ms,
        ttft_ms=response.ttft_ms,
        generation_time_ms=response.generation_time_ms,
        tokens_generated=response.tokens_generated,
        tokens_per_second=response.tokens_per_second,
    )

    if test.match == MatchMode.llm_judge:
        verdict = grade_with_judge(test, actual, judge, executor, config.timeout_ms)
        return TestResult(
            **fields,
            passed=verdict.passed,
            judge_score=verdict.score,
            judge_reasoning=verdict.reasoning,
            judge_criteria_scores=verdict.criteria_scores,
        )

    outcome = evaluate(test.acceptable, actual, test.match, test.case_sensitive)
    return TestResult(
        **fields,
        passed=outcome.passed,
        matched_answer=outcome.matched_answer,
        match_kind=outcome.match_kind,
    )


def summarize(
    categories: dict[str, CategoryStats],
    results: list[TestResult],
    judge_model: str | None = None,
) -> Summary:
    total = sum(c.total for c in categories.values())
    passed = sum(c.passed for c in categories.values())

    latencies = [r.latency_ms for r in results if not r.errored and r.latency_ms is not None]
    judge_scores = [r.judge_score for r in results if r.judge_score is not None]

    return Summary(
        total=total,
        passed=passed,
        failed=total - passed,
        pass_rate=passed / total if total else 0.0,
        avg_latency_ms=round(sum(latencies) / len(latencies)) if latencies else None,
        avg_judge_score=round(sum(judge_scores) / len(judge_scores), 2) if judge_scores else None,
        judge_model=judge_model if judge_scores else None,
    )


def run_benchmark(
    tests: list[TestCase],
    model: str,
    infer: Inference,
    config: BenchmarkConfig | None = None,
    judge: JudgeClient | None = None,
    system_prompt: str = "",
) -> BenchmarkRun:
    config = config or BenchmarkConfig()
    categories: dict[str, CategoryStats] = {}
    results: list[TestResult] = []
    failures: list[Failure] = []
    status = RunStatus.completed

    # Each call gets its own daemon thread, so an abandoned call neither
    # delays the next test nor blocks interpreter exit.
    executor = DaemonThreadExecutor(thread_name_prefix="bench")
    for i, test in enumerate(tests, 1):
        logger.info("[%d/%d] %s", i, len(tests), test.prompt[:55])
        stats = categories.setdefault(test.category, CategoryStats())
        stats.total += 1

        try:
            result = run_test_case(test, infer, config, executor, system_prompt, judge)
        except KeyboardInterrupt:
            result = _error_result(test, "Interrupted", None)
            status = RunStatus.interrupted

        if result.passed:
            stats.passed += 1
        else:
            failures.append(
                Failure(id=test.id, prompt=test.prompt, expected=test.acceptable, actual=result.actual)
            )
        results.append(result)

        if status == RunStatus.interrupted:
            logger.warning("Interrupted; stopping after %d of %d tests", i, len(tests))
            break

    return BenchmarkRun(
        model=model,
        status=status,
        system_prompt=system_prompt,
        summary=summarize(categories, results, judge.model if judge else None),
        categories=categories,
        results=results,
        failures=failures,
    )


def save_results(run: BenchmarkRun, output_dir: Path = BENCHMARKS_DIR) -> tuple[Path, Path]:
    stem = f"benchmark-{run.timestamp:%Y-%m-%dT%H-%M-%S}"
    json_path = output_dir / f"{stem}.json"
    report_path = output_dir / f"{stem}.md"

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        with open(json_path, "w") as f:
            json.dump(run.model_dump(mode="json"), f, indent=2)
        with open(report_path, "w") as f:
            f.write(build_report(run))
    except OSError as e:
        raise ReportWriteError(f"Could not save benchmark results to {output_dir}: {e}", run) from e

    return json_path, report_path


def print_summary(run: BenchmarkRun) -> None:
    summary = run.summary
    print("\n" + "=" * 55)
    print(f"  BENCHMARK {'INTERRUPTED' if run.status == RunStatus.interrupted else 'COMPLETE'}")
    print("=" * 55)
    print(f"  Model: {Path(run.model).name}")
    print(f"  Score: {summary.passed}/{summary.total} ({round(summary.pass_rate * 100)}%)")
    if summary.avg_latency_ms is not None:
        print(f"  Avg Latency: {summary.avg_latency_ms}ms")
    if summary.avg_judge_score is not None:
        print(f"  Avg Judge Score: {summary.avg_judge_score:g}/10 ({summary.judge_model})")

    print("\n  By Category:")
    for name, stats in run.categories.items():
        pct = round(stats.passed / stats.total * 100) if stats.total else 0
        filled = round(pct / 100 * 20)
        bar = "█" * filled + "░" * (20 - filled)
        print(f"  {name + ':':<12}{f'{stats.passed}/{stats.total}':<8}{bar} {pct}%")

    if run.failures:
        print("\n  Failed Tests:")
        for f in run.failures[:5]:
            print(f"   [{f.id}] {f.prompt}")
            print(f"      Expected: {' | '.join(f.expected)}")
            print(f"      Actual:   {f.actual}")
        if len(run.failures) > 5:
            print(f"   ... and {len(run.failures) - 5} more failures")
    print("=" * 55 + "\n")


def run_benchmark_from_files(
    dataset_path: Path,
    model_path: Path,
    config: BenchmarkConfig | None = None,
    system_prompt: str = "",
    judge_config_path: Path | None = None,
    output_dir: Path = BENCHMARKS_DIR,
) -> BenchmarkRun:
    config = config or BenchmarkConfig()
    if not model_path.exists():
        raise FileNotFoundError(f"Model not found: {model_path}")
    tests = load_test_cases(dataset_path)

    judge = None
    if any(tc.match == MatchMode.llm_judge for tc in tests):
        judge_config = load_judge_config(judge_config_path) if judge_config_path else load_judge_config()
        if judge_config is None:
            logger.warning("Dataset has llm_judge tests but no judge is configured; they will fail")
        else:
            judge = JudgeClient(judge_config, timeout_ms=config.timeout_ms)

    print(f"\nStarting benchmark: {model_path.name}  ({len(tests)} tests)")
    run = run_benchmark(
        tests,
        model=str(model_path),
        infer=LlamaCppInference(model_path),
        config=config,
        judge=judge,
        system_prompt=system_prompt,
    )
    print_summary(run)
    json_path, report_path = save_results(run, output_dir)
    print(f"  Results saved → {json_path}")
    print(f"  Report saved  → {report_path}\n")
    return run
