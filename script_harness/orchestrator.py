"""Test orchestrator driving a whole script through the harness."""

import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any

from script_harness.discovery import discover, filter_tests
from script_harness.errors import HostExitError, ScriptLoadError
from script_harness.lifecycle import LifecycleRunner
from script_harness.models.case import TestCase
from script_harness.models.config import HarnessConfig
from script_harness.models.record import RunRecord
from script_harness.models.result import AttemptResult
from script_harness.profiling import CoverageRecorder
from script_harness.reporter import Reporter
from script_harness.retry import RetryController
from script_harness.runtimes.base import TestRuntime

log = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """Process exit codes consumed by build systems."""

    SUCCESS = 0
    FAILURE = 1
    ABORTED = 2


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator:
    """Orchestrates discovery, execution and reporting of one script."""

    __test__ = False

    runtime: TestRuntime
    config: HarnessConfig
    reporter: Reporter
    exit_process: Callable[[int], Any] = os._exit

    async def run(
        self,
        script: Path,
        pattern: str | None = None,
        record: RunRecord | None = None,
    ) -> ExitCode:
        """Run all tests of ``script`` matching ``pattern``.

        Args:
            script: Test script to load and run
            pattern: Optional name filter (regular expression search)
            record: Record to collect results into, a fresh one by default

        Returns:
            Exit code for the process

        """
        if record is None:
            record = RunRecord()
        recorder = self._start_coverage(script)

        log.info("Loading %s", script)
        try:
            self.runtime.load_script(script)
        except HostExitError as e:
            log.error("Loading %s caused the host to exit", script)
            record.add_failure(
                str(script), [f"Loading {script} caused the host to exit: {e}"]
            )
            return self.finish(script, record, recorder)
        except ScriptLoadError as e:
            log.error("Loading %s failed: %s", script, e)
            record.add_failure(
                str(script), [f"Caught exception while loading {script}: {e}"]
            )

        names = self.collect(script, pattern)
        log.info("Running %d test(s) from %s", len(names), script.name)
        retry = self._retry_controller(script, record, recorder)

        for name in names:
            test = TestCase(name=name, source=script)
            try:
                result = await retry.run_with_retry(test, record)
            except HostExitError as e:
                log.error("%s caused the host to exit", test.test_id)
                test.status = "aborted"
                record.add_outcome(test.test_id, "aborted", retries=test.retries)
                record.add_failure(
                    test.test_id,
                    [*test.errors, f"{test.test_id} caused the host to exit: {e}"],
                )
                break
            self.record_result(test, result, record)

        return self.finish(script, record, recorder)

    def collect(self, script: Path, pattern: str | None) -> Sequence[str]:
        """Discover, filter and sort the tests the runtime defines."""
        try:
            source = script.read_text(encoding="utf-8")
        except OSError as e:
            log.error("Cannot read %s: %s", script, e)
            return []
        names = filter_tests(discover(source, self.config.prefix), pattern)
        return sorted(name for name in names if self.runtime.lookup(name) is not None)

    def record_result(
        self, test: TestCase, result: AttemptResult, record: RunRecord
    ) -> None:
        """Account the final attempt of a test."""
        record.add_outcome(
            test.test_id, result.status, result.duration, retries=test.retries
        )
        record.add_message(f"Executed {test.test_id} in {result.duration:.3f} seconds")
        log.info("%s %s (%.3fs)", test.test_id, result.status, result.duration)

        match result.status:
            case "failed":
                record.add_failure(test.test_id, result.errors)
                self.reporter.dump_logs(test, result.logs)
            case "skipped":
                record.add_skip(test.test_id, result.skip_reason or "")
                if result.errors:
                    record.add_message(f"Ignored errors of skipped {test.test_id}:")
                    record.messages.extend(f"  {error}" for error in result.errors)

    def abort(
        self,
        script: Path,
        test: TestCase,
        record: RunRecord,
        recorder: CoverageRecorder | None = None,
    ) -> None:
        """Report a test that could not be cancelled and end the process."""
        test.status = "aborted"
        record.add_outcome(test.test_id, "aborted", retries=test.retries)
        record.add_failure(
            test.test_id,
            [
                *test.errors,
                f"{test.test_id} timed out after {self.config.timeout:g} seconds "
                "and could not be cancelled",
            ],
        )
        self.finish(script, record, recorder)
        self.exit_process(ExitCode.ABORTED)

    def finish(
        self,
        script: Path,
        record: RunRecord,
        recorder: CoverageRecorder | None = None,
    ) -> ExitCode:
        """Stop side-channels, write the reports and pick the exit code."""
        if recorder is not None:
            recorder.stop()
        self.reporter.finish(script, record)

        if record.failed:
            log.info("%d of %d test(s) failed", record.failed, record.executed)
            return ExitCode.FAILURE
        log.info("Executed %d test(s), all passed", record.executed)
        return ExitCode.SUCCESS

    def _retry_controller(
        self, script: Path, record: RunRecord, recorder: CoverageRecorder | None
    ) -> RetryController:
        runner = LifecycleRunner(
            runtime=self.runtime,
            config=self.config,
            on_timeout=lambda test: self.abort(script, test, record, recorder),
        )
        return RetryController(
            runner=runner,
            max_retries=self.config.max_retries,
            delay=self.config.retry_delay,
            enabled=self.config.retries_enabled,
        )

    def _start_coverage(self, script: Path) -> CoverageRecorder | None:
        if not self.config.coverage:
            return None
        recorder = CoverageRecorder(
            data_file=self.config.output_dir / ".coverage",
            include=[str(script.resolve())],
        )
        recorder.start()
        return recorder
