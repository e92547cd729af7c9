import json
import logging
import os
import re
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from bench_runner.errors import JudgeConfigError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_TOKENS = 50
PROJECT_DIR = Path.cwd() / ".nanotune"
BENCHMARKS_DIR = PROJECT_DIR / "benchmarks"
JUDGE_CONFIG_PATH = PROJECT_DIR / "judge.json"

_ENV_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}|\$([A-Za-z_][A-Za-z0-9_]*)")


class Preset(StrEnum):
    low = "low"
    medium = "medium"
    high = "high"
    ultra = "ultra"


class BenchmarkConfig(BaseModel):
    """Runner settings. Generation fields go to the inference backend untouched; ``timeout_ms`` bounds every call."""

    model_config = ConfigDict(extra="forbid")

    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    threads: int | None = None
    gpu_layers: int | None = None
    ctx_size: int | None = None
    batch_size: int | None = None
    temperature: float | None = None
    seed: int | None = None

    @classmethod
    def from_preset(cls, preset: Preset, **overrides: Any) -> "BenchmarkConfig":
        return cls(**{**PRESETS[preset].model_dump(exclude={"name", "description"}), **overrides})


class PresetConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    description: str
    threads: int | None = None  # None lets llama.cpp pick
    gpu_layers: int | None = None  # None offloads everything, 0 is CPU only
    ctx_size: int
    batch_size: int
    max_tokens: int


PRESETS: dict[Preset, PresetConfig] = {
    Preset.low: PresetConfig(
        name="Low-End",
        description="Low-end hardware (older laptops, minimal GPU)",
        threads=4,
        gpu_layers=0,
        ctx_size=2048,
        batch_size=512,
        max_tokens=50,
    ),
    Preset.medium: PresetConfig(
        name="Medium",
        description="Mid-range hardware (modern laptops, integrated GPU)",
        threads=8,
        gpu_layers=20,
        ctx_size=4096,
        batch_size=1024,
        max_tokens=100,
    ),
    Preset.high: PresetConfig(
        name="High-End",
        description="High-end hardware (Apple Silicon M1/M2/M3, discrete GPU)",
        ctx_size=8192,
        batch_size=2048,
        max_tokens=150,
    ),
    Preset.ultra: PresetConfig(
        name="Ultra",
        description="Maximum performance (latest Apple Silicon, max resources)",
        ctx_size=16384,
        batch_size=4096,
        max_tokens=200,
    ),
}


class SdkProvider(StrEnum):
    openai_compatible = "openai-compatible"
    anthropic = "anthropic"
    google = "google"


class JudgeProviderConfig(BaseModel):
    # judge.json files use camelCase keys (baseUrl, apiKey, sdkProvider)
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    name: str
    model: str
    sdk_provider: SdkProvider = SdkProvider.openai_compatible
    base_url: str | None = None
    api_key: str | None = None


def substitute_env_vars(value: Any) -> Any:
    """Expand ``${VAR}``, ``$VAR`` and ``${VAR:-default}`` in strings, recursing into lists and dicts.

    Unset variables without a default expand to an empty string.
    """
    if isinstance(value, str):
        return _ENV_VAR.sub(_expand, value)
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    if isinstance(value, dict):
        return {key: substitute_env_vars(item) for key, item in value.items()}
    return value


def _expand(match: re.Match[str]) -> str:
    name = match.group(1) or match.group(3)
    default = match.group(2)
    resolved = os.environ.get(name)
    if resolved is not None:
        return resolved
    if default is not None:
        return default
    logger.warning("Environment variable %s is not set; substituting an empty string", name)
    return ""


def load_judge_config(path: Path = JUDGE_CONFIG_PATH) -> JudgeProviderConfig | None:
    """Read the judge provider config, or return None when no judge is configured."""
    if not path.exists():
        return None
    try:
        with open(path) as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise JudgeConfigError(f"Invalid JSON in {path}: {e}") from e
    try:
        return JudgeProviderConfig.model_validate(substitute_env_vars(raw))
    except ValidationError as e:
        raise JudgeConfigError(f"Invalid judge config in {path}: {e}") from e
