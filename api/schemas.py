from pydantic import BaseModel, Field, field_validator

from bench_runner.config import DEFAULT_TIMEOUT_MS, Preset
from bench_runner.models import TestCase


class RunRequest(BaseModel):
    name: str
    model_path: str
    test_cases: list[TestCase] = Field(min_length=1)
    system_prompt: str = ""
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    preset: Preset | None = None

    @field_validator("test_cases")
    @classmethod
    def _unique_ids(cls, test_cases: list[TestCase]) -> list[TestCase]:
        ids = [tc.id for tc in test_cases]
        if len(ids) != len(set(ids)):
            raise ValueError("test case ids must be unique")
        return test_cases


class RunCreatedResponse(BaseModel):
    id: str
    name: str
    status: str


class ResultResponse(BaseModel):
    test_id: str
    prompt: str
    category: str
    expected: list[str]
    actual: str
    passed: bool
    errored: bool
    latency_ms: int | None
    judge_score: float | None
    judge_reasoning: str | None


class RunSummaryResponse(BaseModel):
    id: str
    name: str
    model: str
    status: str
    created_at: str
    total: int | None
    passed: int | None
    pass_rate: float | None


class RunDetailResponse(BaseModel):
    id: str
    name: str
    model: str
    system_prompt: str
    status: str
    created_at: str
    results: list[ResultResponse]
    categories: dict[str, dict[str, int]]
    total: int | None
    passed: int | None
    failed: int | None
    pass_rate: float | None
    avg_latency_ms: int | None
    avg_judge_score: float | None
    judge_model: str | None
