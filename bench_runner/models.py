from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MatchMode(StrEnum):
    exact = "exact"
    contains = "contains"
    starts_with = "starts_with"
    semantic = "semantic"
    llm_judge = "llm_judge"


class RunStatus(StrEnum):
    pending = "pending"
    running = "running"
    completed = "completed"
    interrupted = "interrupted"
    failed = "failed"


class TestCase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int | str
    prompt: str
    acceptable: list[str] = Field(default_factory=list)
    category: str = "uncategorized"
    match: MatchMode = MatchMode.semantic
    case_sensitive: bool = False
    criteria: list[str] = Field(default_factory=list)
    pass_threshold: float = Field(default=7.0, ge=0.0, le=10.0)

    @model_validator(mode="after")
    def _require_answers(self) -> "TestCase":
        # Judge tests treat acceptable answers as optional reference text.
        if self.match != MatchMode.llm_judge and not self.acceptable:
            raise ValueError(f"Test {self.id!r} needs at least one acceptable answer")
        return self


class JudgeCriterion(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    description: str


class MatchOutcome(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    passed: bool
    matched_answer: str | None = None
    match_kind: str | None = None


class JudgeResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    passed: bool
    score: float = Field(ge=0.0, le=10.0)
    reasoning: str
    criteria_scores: dict[str, float] = Field(default_factory=dict)


class InferenceResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str
    ttft_ms: float | None = None
    generation_time_ms: float | None = None
    tokens_generated: int | None = None
    tokens_per_second: float | None = None


class TestResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int | str
    prompt: str
    expected: list[str]
    actual: str
    passed: bool
    category: str
    errored: bool = False
    latency_ms: int | None = None
    ttft_ms: float | None = None
    generation_time_ms: float | None = None
    tokens_generated: int | None = None
    tokens_per_second: float | None = None
    matched_answer: str | None = None
    match_kind: str | None = None
    judge_score: float | None = None
    judge_reasoning: str | None = None
    judge_criteria_scores: dict[str, float] | None = None


class Failure(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int | str
    prompt: str
    expected: list[str]
    actual: str


class CategoryStats(BaseModel):
    model_config = ConfigDict(extra="forbid")

    passed: int = 0
    total: int = 0


class Summary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total: int
    passed: int
    failed: int
    pass_rate: float = Field(ge=0.0, le=1.0)
    avg_latency_ms: int | None = None
    avg_judge_score: float | None = None
    judge_model: str | None = None


class BenchmarkRun(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str
    timestamp: datetime = Field(default_factory=_utcnow)
    status: RunStatus = RunStatus.completed
    system_prompt: str = ""
    summary: Summary
    categories: dict[str, CategoryStats] = Field(default_factory=dict)
    results: list[TestResult] = Field(default_factory=list)
    failures: list[Failure] = Field(default_factory=list)
