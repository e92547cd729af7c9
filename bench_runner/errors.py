from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bench_runner.models import BenchmarkRun


class BenchmarkError(Exception):
    """Base class for every error raised by the benchmark engine."""


class DatasetError(BenchmarkError):
    """Test definitions are missing or malformed. Raised before any test runs."""


class InferenceTransportError(BenchmarkError):
    """The inference collaborator failed to produce a response."""


class InferenceTimeout(BenchmarkError, TimeoutError):
    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class JudgeConfigError(BenchmarkError):
    """The judge config file exists but cannot be read as a provider config."""


class JudgeTransportError(BenchmarkError):
    """The judge provider could not be reached or returned nothing usable."""


class JudgeParseError(BenchmarkError):
    """The judge reply was not the JSON object it was asked for."""


class ReportWriteError(BenchmarkError):
    """Persisting run artifacts failed. The finished run is kept on ``run``."""

    def __init__(self, message: str, run: "BenchmarkRun") -> None:
        super().__init__(message)
        self.run = run
