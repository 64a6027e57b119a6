"""Tests for the test orchestrator."""

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import Mock, call, patch

import pytest

from script_harness.errors import HostExitError, ScriptLoadError
from script_harness.models.config import HarnessConfig
from script_harness.models.record import RunRecord
from script_harness.models.result import Failed, Passed, Skipped
from script_harness.orchestrator import ExitCode, TestOrchestrator
from script_harness.profiling import CoverageRecorder
from script_harness.reporter import Reporter
from script_harness.runtimes.base import TestRuntime
from script_harness.testing.factories import AttemptResultFactory, TestCaseFactory

SCRIPT_SOURCE = """\
def Test_b():
    pass

def Test_a():
    pass

def helper():
    pass
"""


def body() -> None:
    """Stand-in for a script function."""


@pytest.fixture
def script(tmp_path: Path) -> Path:
    """Create test script with two tests."""
    path = tmp_path / "test_sample.py"
    path.write_text(SCRIPT_SOURCE)
    return path


@pytest.fixture
def functions() -> dict[str, Callable[..., Any]]:
    """Functions the loaded script defines, by name."""
    return {"Test_a": body, "Test_b": body, "helper": body}


@pytest.fixture
def runtime(functions: dict[str, Callable[..., Any]]) -> Mock:
    """Create mock runtime whose bodies pass quietly."""
    runtime = Mock(spec=TestRuntime)
    runtime.lookup.side_effect = functions.get
    runtime.invoke.return_value = Passed()
    runtime.take_errors.return_value = []
    runtime.pending_output.return_value = ""
    runtime.collect_logs.return_value = {}
    runtime.close_extra_windows.return_value = 0
    return runtime


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Directory receiving the reports."""
    return tmp_path / "out"


@pytest.fixture
def config(output_dir: Path) -> HarnessConfig:
    """Create configuration without retry delay."""
    return HarnessConfig(output_dir=output_dir, retry_delay=0, max_retries=2)


@pytest.fixture
def exit_process() -> Mock:
    """Create stand-in for the process exit."""
    return Mock()


@pytest.fixture
def orchestrator(
    runtime: Mock, config: HarnessConfig, exit_process: Mock
) -> TestOrchestrator:
    """Create orchestrator with mock runtime."""
    return TestOrchestrator(
        runtime=runtime,
        config=config,
        reporter=Reporter.from_config(config),
        exit_process=exit_process,
    )


async def test_all_passing(
    orchestrator: TestOrchestrator, script: Path, output_dir: Path
) -> None:
    """Runs discovered tests in sorted order and writes the marker."""
    record = RunRecord()

    exit_code = await orchestrator.run(script, record=record)

    assert exit_code == ExitCode.SUCCESS
    assert [o.test_id for o in record.outcomes] == [
        f"{script}::Test_a",
        f"{script}::Test_b",
    ]
    assert record.executed == 2
    assert (output_dir / "test_sample.res").exists()
    assert not (output_dir / "test.log").exists()


async def test_failure_is_retried_and_reported(
    orchestrator: TestOrchestrator, runtime: Mock, script: Path, output_dir: Path
) -> None:
    """A test failing every attempt is retried, then recorded once."""
    runtime.invoke.side_effect = [Passed(), *[Failed(errors=("boom",))] * 3]
    record = RunRecord()

    exit_code = await orchestrator.run(script, record=record)

    assert exit_code == ExitCode.FAILURE
    assert record.executed == 2
    assert record.failed == 1
    assert record.failures[0].test_id == f"{script}::Test_b"
    assert record.outcomes[1].retries == 2
    assert record.messages.count("Flaky test failed, running it again") == 2
    assert not (output_dir / "test_sample.res").exists()
    assert "Found errors in" in (output_dir / "test.log").read_text()


async def test_filter_limits_tests(
    orchestrator: TestOrchestrator, script: Path
) -> None:
    """Only tests matching the pattern run."""
    record = RunRecord()

    await orchestrator.run(script, "_b$", record)

    assert [o.test_id for o in record.outcomes] == [f"{script}::Test_b"]


async def test_skipped_test_counts_as_executed(
    orchestrator: TestOrchestrator, runtime: Mock, script: Path, output_dir: Path
) -> None:
    """A skipped test is executed, not failed, and the marker is written."""
    runtime.invoke.return_value = Skipped(reason="no network")
    record = RunRecord()

    exit_code = await orchestrator.run(script, "Test_a", record)

    assert exit_code == ExitCode.SUCCESS
    assert record.executed == 1
    assert record.skips[0].reason == "no network"
    assert (output_dir / "test_sample.res").exists()


async def test_load_error_is_a_failure(
    orchestrator: TestOrchestrator,
    runtime: Mock,
    functions: dict[str, Callable[..., Any]],
    script: Path,
    output_dir: Path,
) -> None:
    """A script that fails to load is recorded as one failure."""
    functions.clear()
    runtime.load_script.side_effect = ScriptLoadError(
        "SyntaxError: invalid syntax @ test_sample.py:4"
    )
    record = RunRecord()

    exit_code = await orchestrator.run(script, record=record)

    assert exit_code == ExitCode.FAILURE
    assert record.executed == 0
    assert record.failed == 1
    assert record.failures[0].messages == (
        f"Caught exception while loading {script}: "
        "SyntaxError: invalid syntax @ test_sample.py:4",
    )
    assert "NO tests executed" in (output_dir / "messages").read_text()


async def test_host_exit_while_loading(
    orchestrator: TestOrchestrator, runtime: Mock, script: Path
) -> None:
    """Exiting the host during load ends the run without running tests."""
    runtime.load_script.side_effect = HostExitError("exit status 1")
    record = RunRecord()

    exit_code = await orchestrator.run(script, record=record)

    assert exit_code == ExitCode.FAILURE
    runtime.invoke.assert_not_awaited()
    assert "caused the host to exit" in record.failures[0].messages[0]


async def test_host_exit_stops_run(
    orchestrator: TestOrchestrator, runtime: Mock, script: Path, output_dir: Path
) -> None:
    """A test exiting the host is reported and later tests do not run."""
    runtime.invoke.side_effect = HostExitError("exit status 0")
    record = RunRecord()

    exit_code = await orchestrator.run(script, record=record)

    assert exit_code == ExitCode.FAILURE
    assert runtime.invoke.await_count == 1
    assert record.outcomes[0].status == "aborted"
    assert record.failures[0].messages[-1] == (
        f"{script}::Test_a caused the host to exit: exit status 0"
    )
    assert (output_dir / "test.log").exists()


async def test_failed_test_logs_are_dumped(
    orchestrator: TestOrchestrator, runtime: Mock, script: Path, output_dir: Path
) -> None:
    """Diagnostic logs of a failed test are written next to the reports."""
    runtime.invoke.return_value = Failed(errors=("boom",))
    runtime.collect_logs.return_value = {"server": "listening\n"}

    await orchestrator.run(script, "Test_a")

    dump = output_dir / "test_sample_Test_a_server.testlog"
    assert dump.read_text() == "listening\n"


def test_collect_ignores_undefined_names(
    orchestrator: TestOrchestrator,
    functions: dict[str, Callable[..., Any]],
    script: Path,
) -> None:
    """Names found in the source but not defined at runtime are dropped."""
    del functions["Test_b"]

    assert orchestrator.collect(script, None) == ["Test_a"]


def test_collect_unreadable_script(
    orchestrator: TestOrchestrator, tmp_path: Path
) -> None:
    """A script that cannot be read yields no tests."""
    assert orchestrator.collect(tmp_path / "missing.py", None) == []


def test_record_result_skipped_with_errors(
    orchestrator: TestOrchestrator, script: Path
) -> None:
    """Errors of a skipped test are kept as messages only."""
    test = TestCaseFactory.build(name="Test_a", source=script)
    result = AttemptResultFactory.build(
        status="skipped", skip_reason="later", errors=("teardown broke",)
    )
    record = RunRecord()

    orchestrator.record_result(test, result, record)

    assert record.failed == 0
    assert record.skips[0].reason == "later"
    assert record.messages[-2:] == [
        f"Ignored errors of skipped {test.test_id}:",
        "  teardown broke",
    ]


def test_abort_reports_and_exits(
    orchestrator: TestOrchestrator,
    exit_process: Mock,
    script: Path,
    output_dir: Path,
) -> None:
    """A test that cannot be cancelled is reported before the process exits."""
    test = TestCaseFactory.build(name="Test_a", source=script)
    record = RunRecord()

    orchestrator.abort(script, test, record)

    exit_process.assert_called_once_with(ExitCode.ABORTED)
    assert test.status == "aborted"
    assert record.outcomes[0].status == "aborted"
    assert "could not be cancelled" in (output_dir / "test.log").read_text()


async def test_coverage_started_and_stopped(
    runtime: Mock, script: Path, output_dir: Path
) -> None:
    """Coverage recording wraps the run when enabled."""
    config = HarnessConfig(output_dir=output_dir, coverage=True)
    orchestrator = TestOrchestrator(
        runtime=runtime, config=config, reporter=Reporter.from_config(config)
    )

    with patch("script_harness.orchestrator.CoverageRecorder") as recorder_cls:
        await orchestrator.run(script)

    recorder_cls.assert_called_once_with(
        data_file=output_dir / ".coverage", include=[str(script.resolve())]
    )
    recorder_cls.return_value.start.assert_called_once_with()
    recorder_cls.return_value.stop.assert_called_once_with()


def test_abort_saves_coverage_before_exit(
    orchestrator: TestOrchestrator, exit_process: Mock, script: Path
) -> None:
    """Coverage collected so far is saved before the process ends."""
    test = TestCaseFactory.build(name="Test_a", source=script)
    recorder = Mock(spec=CoverageRecorder)
    calls = Mock()
    calls.attach_mock(recorder.stop, "stop")
    calls.attach_mock(exit_process, "exit_process")

    orchestrator.abort(script, test, RunRecord(), recorder)

    assert calls.mock_calls == [call.stop(), call.exit_process(ExitCode.ABORTED)]


async def test_hard_timeout_stops_coverage(
    runtime: Mock, script: Path, output_dir: Path, exit_process: Mock
) -> None:
    """A test outliving its grace period still gets coverage saved."""
    config = HarnessConfig(
        output_dir=output_dir, coverage=True, timeout=0.05, timeout_grace=0.05
    )
    orchestrator = TestOrchestrator(
        runtime=runtime,
        config=config,
        reporter=Reporter.from_config(config),
        exit_process=exit_process,
    )

    async def hang(func: Any, token: Any) -> Passed:
        await asyncio.sleep(0.5)
        return Passed()

    runtime.invoke.side_effect = hang

    with patch("script_harness.orchestrator.CoverageRecorder") as recorder_cls:
        await orchestrator.run(script, "Test_a")

    exit_process.assert_called_once_with(ExitCode.ABORTED)
    recorder_cls.return_value.stop.assert_called()
