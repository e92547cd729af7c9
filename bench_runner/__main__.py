import argparse
import logging
import sys
from pathlib import Path

from bench_runner.config import BENCHMARKS_DIR, DEFAULT_TIMEOUT_MS, BenchmarkConfig, Preset
from bench_runner.errors import BenchmarkError
from bench_runner.runner import find_latest_model, run_benchmark_from_files


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bench_runner", description="Benchmark a GGUF model against a test dataset"
    )
    parser.add_argument("--model", type=Path, help="GGUF model path (default: newest exported model)")
    parser.add_argument("--dataset", type=Path, default=BENCHMARKS_DIR / "tests.json")
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT_MS, help="per-test timeout in ms")
    parser.add_argument("--preset", type=Preset, choices=list(Preset))
    parser.add_argument("--system-prompt", default="")
    parser.add_argument("--judge-config", type=Path)
    parser.add_argument("--output-dir", type=Path, default=BENCHMARKS_DIR)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.preset:
        config = BenchmarkConfig.from_preset(args.preset, timeout_ms=args.timeout)
    else:
        config = BenchmarkConfig(timeout_ms=args.timeout)

    try:
        model = args.model or find_latest_model()
        run_benchmark_from_files(
            dataset_path=args.dataset,
            model_path=model,
            config=config,
            system_prompt=args.system_prompt,
            judge_config_path=args.judge_config,
            output_dir=args.output_dir,
        )
    except (BenchmarkError, FileNotFoundError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
