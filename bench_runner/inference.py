"""llama.cpp backend for running a GGUF model on a single prompt."""

import re
import subprocess
from pathlib import Path

from bench_runner.config import BenchmarkConfig
from bench_runner.errors import InferenceTimeout, InferenceTransportError
from bench_runner.models import InferenceResponse

LLAMA_CPP_BIN_DIR = Path.home() / ".nanotune" / "llama.cpp" / "bin"

_EOF_MARKER = re.compile(r"\n?>\s*\n?EOF by user\s*$", re.IGNORECASE)
_TRAILING_PROMPT = re.compile(r"\n?>\s*$")
_PROMPT_EVAL = re.compile(r"prompt eval time =\s*([\d.]+) ms")
_EVAL = re.compile(
    r"^(?!.*prompt).*\beval time =\s*([\d.]+) ms /\s*(\d+) (?:runs|tokens).*?([\d.]+) tokens per second",
    re.MULTILINE,
)


def build_prompt(system_prompt: str, user_prompt: str) -> str:
    return f"{system_prompt}\n\nUser: {user_prompt}\n\nAssistant:"


def clean_output(stdout: str) -> str:
    output = _EOF_MARKER.sub("", stdout.strip()).strip()
    return _TRAILING_PROMPT.sub("", output).strip()


def parse_timings(stderr: str) -> dict[str, float | int]:
    """Pull timing fields out of llama.cpp's perf log. Missing lines leave fields out."""
    timings: dict[str, float | int] = {}
    if match := _PROMPT_EVAL.search(stderr):
        # Prompt processing time is the closest thing llama-completion reports to TTFT.
        timings["ttft_ms"] = float(match.group(1))
    if match := _EVAL.search(stderr):
        timings["generation_time_ms"] = float(match.group(1))
        timings["tokens_generated"] = int(match.group(2))
        timings["tokens_per_second"] = float(match.group(3))
    return timings


class LlamaCppInference:
    def __init__(self, model_path: Path, bin_dir: Path = LLAMA_CPP_BIN_DIR) -> None:
        self.model_path = model_path
        self.binary = bin_dir / "llama-completion"

    def build_command(self, prompt: str, config: BenchmarkConfig) -> list[str]:
        cmd = [
            str(self.binary),
            "-m", str(self.model_path),
            "-p", prompt,
            "-n", str(config.max_tokens),
            "--no-display-prompt",
        ]
        optional = [
            ("-t", config.threads),
            ("-ngl", config.gpu_layers),
            ("-c", config.ctx_size),
            ("-b", config.batch_size),
            ("--temp", config.temperature),
            ("--seed", config.seed),
        ]
        for flag, value in optional:
            if value is not None:
                cmd.extend([flag, str(value)])
        return cmd

    def __call__(self, prompt: str, config: BenchmarkConfig) -> InferenceResponse:
        try:
            completed = subprocess.run(
                self.build_command(prompt, config),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
                timeout=config.timeout_ms / 1000,
            )
        except subprocess.TimeoutExpired as e:
            # subprocess.run has already killed and reaped the child
            raise InferenceTimeout(config.timeout_ms) from e
        except OSError as e:
            raise InferenceTransportError(f"Could not start {self.binary.name}: {e}") from e

        if completed.returncode != 0:
            detail = completed.stderr.strip().splitlines()[-1:] or ["no output"]
            raise InferenceTransportError(
                f"{self.binary.name} exited with status {completed.returncode}: {detail[0]}"
            )

        return InferenceResponse(
            text=clean_output(completed.stdout),
            **parse_timings(completed.stderr),
        )
