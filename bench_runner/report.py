from pathlib import PurePath

from bench_runner.models import BenchmarkRun, TestResult

ACTUAL_PREVIEW_CHARS = 50


def _table_cell(text: str) -> str:
    return text.replace("\n", " ").replace("|", "\\|")


def _percent(passed: int, total: int) -> int:
    return round(passed / total * 100) if total else 0


def _result_section(result: TestResult) -> list[str]:
    status = "✅" if result.passed else "❌"
    lines = [f"### {status} Test #{result.id}: {result.prompt}", ""]
    lines.append(f"**Category:** {result.category}")
    if result.latency_ms is not None:
        lines.append(f"**Latency:** {result.latency_ms}ms")
    lines.append("")

    if result.judge_score is not None:
        lines.append(f"**Judge Score:** {result.judge_score:g}/10")
        for name, score in (result.judge_criteria_scores or {}).items():
            lines.append(f"- {name}: {score:g}")
        if result.judge_reasoning:
            lines.append("")
            lines.append(f"**Judge Reasoning:** {result.judge_reasoning}")
        if result.expected:
            lines.append("")
            lines.append("**Reference Answers:**")
            lines.extend(f"- `{answer}`" for answer in result.expected)
    else:
        lines.append("**Expected (any of):**")
        lines.extend(f"- `{answer}`" for answer in result.expected)

    lines += ["", "**Model Response:**", "```", result.actual, "```", "", "---", ""]
    return lines


def build_report(run: BenchmarkRun) -> str:
    summary = run.summary
    lines = [
        "# Benchmark Report",
        "",
        f"**Date:** {run.timestamp:%Y-%m-%d %H:%M:%S} UTC",
        f"**Model:** {PurePath(run.model).name}",
        "",
        "## Summary",
        "",
        f"- **Total Tests:** {summary.total}",
        f"- **Passed:** {summary.passed}",
        f"- **Failed:** {summary.failed}",
        f"- **Pass Rate:** {round(summary.pass_rate * 100)}%",
    ]
    if summary.avg_latency_ms is not None:
        lines.append(f"- **Avg Latency:** {summary.avg_latency_ms}ms")
    if summary.avg_judge_score is not None:
        lines.append(f"- **Avg Judge Score:** {summary.avg_judge_score:g}/10")
    if summary.judge_model:
        lines.append(f"- **Judge Model:** {summary.judge_model}")
    lines.append("")

    lines += ["## Results by Category", ""]
    for category, stats in run.categories.items():
        pct = _percent(stats.passed, stats.total)
        lines.append(f"- **{category}:** {stats.passed}/{stats.total} ({pct}%)")
    lines.append("")

    lines += ["## System Prompt", "", "```", run.system_prompt, "```", ""]

    lines += ["## Detailed Results", ""]
    for result in run.results:
        lines += _result_section(result)

    if run.failures:
        lines += ["## Failed Tests Summary", "", "| ID | Prompt | Expected | Actual |", "|---|---|---|---|"]
        for f in run.failures:
            expected = " \\| ".join(_table_cell(answer) for answer in f.expected)
            actual = _table_cell(f.actual.replace("\n", " ")[:ACTUAL_PREVIEW_CHARS])
            lines.append(f"| {f.id} | {_table_cell(f.prompt)} | {expected} | {actual} |")
        lines.append("")

    return "\n".join(lines)
