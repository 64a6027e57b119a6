"""CLI entry point for the script test harness."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from script_harness.models.config import HarnessConfig
from script_harness.models.record import RunRecord
from script_harness.orchestrator import TestOrchestrator
from script_harness.reporter import Reporter
from script_harness.runtimes.loading import available_runtimes, load_runtime_manifest

STATUS_SYMBOLS = {
    "passed": "✓",
    "failed": "✗",
    "skipped": "-",
    "aborted": "!",
}


def log_results_summary(log: logging.Logger, record: RunRecord) -> None:
    """Log a formatted summary of test results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for outcome in record.outcomes:
        symbol = STATUS_SYMBOLS.get(outcome.status, "?")
        log.info(
            "%s %s: %s (%.2fs)",
            symbol,
            outcome.test_id,
            outcome.status,
            outcome.duration,
        )
        if outcome.retries:
            log.info("  Retries: %d", outcome.retries)

    for failure in record.failures:
        log.info("Found errors in %s:", failure.test_id)
        for message in failure.messages:
            log.info("  %s", message)

    for skip in record.skips:
        log.info("Skipped %s: %s", skip.test_id, skip.reason)


def format_output(record: RunRecord) -> dict[str, Any]:
    """Format run results for JSON output."""
    results = [
        {
            "test": outcome.test_id,
            "status": outcome.status,
            "duration": outcome.duration,
            "retries": outcome.retries,
        }
        for outcome in record.outcomes
    ]
    return {
        "executed": record.executed,
        "passed": sum(1 for r in results if r["status"] == "passed"),
        "failed": record.failed,
        "skipped": len(record.skips),
        "results": results,
    }


async def run(
    script: Path,
    pattern: str | None,
    runtime_key: str,
    runtime_config_json: str,
    config: HarnessConfig,
) -> int:
    """Run the tests of a script and return exit code."""
    log = logging.getLogger("script_harness")

    log.info("Loading runtime: %s", runtime_key)
    manifest = load_runtime_manifest(runtime_key)

    config_dict = json.loads(runtime_config_json)
    runtime_config = manifest.config_cls(**config_dict)

    record = RunRecord()
    async with manifest.runtime_factory(runtime_config) as runtime:
        orchestrator = TestOrchestrator(
            runtime=runtime,
            config=config,
            reporter=Reporter.from_config(config),
        )
        exit_code = await orchestrator.run(script, pattern, record)

    log_results_summary(log, record)
    print(json.dumps(format_output(record), indent=2))

    return int(exit_code)


def build_config(args: argparse.Namespace) -> HarnessConfig:
    """Merge command line options over the environment toggles."""
    overrides = {
        "prefix": args.prefix,
        "timeout": args.timeout,
        "max_retries": args.max_retries,
        "retry_delay": args.retry_delay,
        "output_dir": args.output_dir,
    }
    return HarnessConfig.from_env(
        **{key: value for key, value in overrides.items() if value is not None}
    )


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Run the tests defined in a script")
    parser.add_argument("script", type=Path, help="Test script to run")
    parser.add_argument(
        "filter",
        nargs="?",
        default=None,
        help="Only run tests whose name matches this pattern",
    )
    parser.add_argument(
        "--runtime",
        default="python",
        help=(
            "Runtime executing the script, one of: "
            f"{', '.join(available_runtimes())} (default: python)"
        ),
    )
    parser.add_argument(
        "--runtime-config",
        default="{}",
        help="JSON configuration for the runtime",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the marker, logs and diagnostic dumps",
    )
    parser.add_argument("--prefix", default=None, help="Test function name prefix")
    parser.add_argument(
        "--timeout", type=float, default=None, help="Per-test timeout in seconds"
    )
    parser.add_argument(
        "--max-retries", type=int, default=None, help="Retries of failed tests"
    )
    parser.add_argument(
        "--retry-delay", type=float, default=None, help="Seconds between retries"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(
        run(
            script=args.script,
            pattern=args.filter,
            runtime_key=args.runtime,
            runtime_config_json=args.runtime_config,
            config=build_config(args),
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
