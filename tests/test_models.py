from typing import Any

import pytest
from pydantic import ValidationError

from bench_runner.models import (
    BenchmarkRun,
    JudgeResult,
    MatchMode,
    RunStatus,
    Summary,
    TestCase,
    TestResult,
)


class TestTestCase:
    def test_creates_with_required_fields(self) -> None:
        tc = TestCase(id=1, prompt="list files", acceptable=["ls"])
        assert tc.prompt == "list files"

    def test_defaults(self) -> None:
        tc = TestCase(id=1, prompt="x", acceptable=["y"])
        assert tc.match == MatchMode.semantic
        assert tc.category == "uncategorized"
        assert tc.case_sensitive is False
        assert tc.criteria == []
        assert tc.pass_threshold == 7.0

    def test_accepts_string_ids(self) -> None:
        tc = TestCase(id="q-1", prompt="x", acceptable=["y"])
        assert tc.id == "q-1"

    def test_parses_match_mode_from_string(self) -> None:
        tc = TestCase.model_validate({"id": 1, "prompt": "x", "acceptable": ["y"], "match": "starts_with"})
        assert tc.match == MatchMode.starts_with

    def test_rejects_unknown_match_mode(self) -> None:
        with pytest.raises(ValidationError):
            TestCase.model_validate({"id": 1, "prompt": "x", "acceptable": ["y"], "match": "fuzzy"})

    def test_requires_acceptable_answers_for_string_modes(self) -> None:
        with pytest.raises(ValidationError, match="acceptable answer"):
            TestCase(id=1, prompt="x", match=MatchMode.contains)

    def test_judge_tests_do_not_need_acceptable_answers(self) -> None:
        tc = TestCase(id=1, prompt="Explain REST.", match=MatchMode.llm_judge)
        assert tc.acceptable == []

    def test_pass_threshold_must_be_within_range(self) -> None:
        with pytest.raises(ValidationError):
            TestCase(id=1, prompt="x", match=MatchMode.llm_judge, pass_threshold=11)

    def test_acceptable_lists_are_independent_across_instances(self) -> None:
        tc1 = TestCase(id=1, prompt="x", match=MatchMode.llm_judge)
        tc2 = TestCase(id=2, prompt="x", match=MatchMode.llm_judge)
        tc1.acceptable.append("y")
        assert tc2.acceptable == []

    def test_rejects_extra_fields(self) -> None:
        with pytest.raises(ValidationError):
            TestCase(id=1, prompt="x", acceptable=["y"], unknown="z")  # type: ignore[call-arg]


class TestJudgeResult:
    def test_score_above_ten_raises(self) -> None:
        with pytest.raises(ValidationError):
            JudgeResult(passed=True, score=10.5, reasoning="")

    def test_criteria_scores_default_to_empty(self) -> None:
        assert JudgeResult(passed=False, score=0, reasoning="").criteria_scores == {}


class TestTestResult:
    def _valid_result(self, **kwargs: Any) -> TestResult:
        defaults = dict(id=1, prompt="p", expected=["a"], actual="a", passed=True, category="basic")
        return TestResult(**{**defaults, **kwargs})

    def test_timing_fields_are_optional(self) -> None:
        r = self._valid_result()
        assert r.latency_ms is None
        assert r.tokens_per_second is None
        assert r.errored is False

    def test_is_immutable(self) -> None:
        r = self._valid_result()
        with pytest.raises(ValidationError):
            r.passed = False  # type: ignore[misc]


class TestBenchmarkRun:
    def _summary(self) -> Summary:
        return Summary(total=0, passed=0, failed=0, pass_rate=0.0)

    def test_timestamp_is_timezone_aware(self) -> None:
        run = BenchmarkRun(model="m.gguf", summary=self._summary())
        assert run.timestamp.tzinfo is not None

    def test_status_defaults_to_completed(self) -> None:
        run = BenchmarkRun(model="m.gguf", summary=self._summary())
        assert run.status == RunStatus.completed

    def test_pass_rate_above_one_raises(self) -> None:
        with pytest.raises(ValidationError):
            Summary(total=1, passed=2, failed=-1, pass_rate=2.0)

    def test_serializes_to_json_mode(self) -> None:
        run = BenchmarkRun(model="m.gguf", summary=self._summary())
        data = run.model_dump(mode="json")
        assert isinstance(data["timestamp"], str)
        assert data["summary"]["avg_latency_ms"] is None
