"""Runs one test through setup, body, teardown and isolation cleanup."""

import logging
import os
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from script_harness.cancellation import CancellationToken, TimeoutGuard
from script_harness.errors import HostExitError, describe_exception
from script_harness.models.case import TestCase
from script_harness.models.config import HarnessConfig
from script_harness.models.result import AttemptResult, Failed, Passed, Skipped
from script_harness.runtimes.base import TestRuntime

log = logging.getLogger(__name__)

GLOBAL_SETUP = "SetUp"
GLOBAL_TEARDOWN = "TearDown"


def hook_names(test: TestCase, prefix: str) -> tuple[str, str]:
    """Names of the test-specific setup and teardown hooks."""
    suffix = test.name.removeprefix(prefix)
    return f"{GLOBAL_SETUP}_{suffix}", f"{GLOBAL_TEARDOWN}_{suffix}"


@dataclass(frozen=True, kw_only=True)
class LifecycleRunner:
    """Executes a single attempt of a test.

    Every step is fault-isolated: its exception is recorded on the test and
    the remaining steps still run. Only a host exit escapes.
    """

    runtime: TestRuntime
    config: HarnessConfig
    on_timeout: Callable[[TestCase], None]

    async def run_once(self, test: TestCase) -> AttemptResult:
        """Run setup, body, teardown and cleanup for ``test``."""
        cwd = Path.cwd()
        test.status = "running"
        test.errors.clear()
        test.skip_reason = None
        started = time.monotonic()
        setup_name, teardown_name = hook_names(test, self.config.prefix)
        timed_out = False
        skipped = False

        try:
            await self._step(test, "isolation reset", self.runtime.reset_isolation)
            await self._hook(test, setup_name)
            await self._hook(test, GLOBAL_SETUP)

            skipped, timed_out = await self._run_body(test)

            await self._hook(test, GLOBAL_TEARDOWN)
            await self._hook(test, teardown_name)
            test.errors.extend(
                f"{test.test_id}: {e}" for e in self.runtime.take_errors()
            )
            logs = self.runtime.collect_logs()
            await self._cleanup(test)
        finally:
            os.chdir(cwd)

        if skipped:
            test.status = "skipped"
        elif test.errors:
            test.status = "failed"
        else:
            test.status = "passed"

        return AttemptResult(
            status=test.status,
            errors=tuple(test.errors),
            skip_reason=test.skip_reason,
            duration=time.monotonic() - started,
            timed_out=timed_out,
            logs=logs,
        )

    async def _run_body(self, test: TestCase) -> tuple[bool, bool]:
        """Run the body under the timeout guard.

        Returns:
            Whether the test was skipped and whether it timed out

        """
        body = self.runtime.lookup(test.name)
        if body is None:
            test.errors.append(f"{test.test_id}: test function is not defined")
            return False, False

        token = CancellationToken()
        guard = TimeoutGuard(
            timeout=self.config.timeout,
            grace=self.config.timeout_grace,
            on_expire=lambda: self.on_timeout(test),
        )
        guard.arm(token)
        try:
            outcome = await self.runtime.invoke(body, token)
        finally:
            timed_out = guard.disarm()

        soft_errors = self.runtime.take_errors()
        output = self.runtime.pending_output()
        self.runtime.clear_output()

        if timed_out:
            log.warning("%s timed out", test.test_id)
            test.errors.append(
                f"{test.test_id}: timed out after {self.config.timeout:g} seconds"
            )
            return False, True

        match outcome:
            case Skipped(reason=reason):
                test.errors.clear()
                test.skip_reason = reason
                log.info("%s skipped: %s", test.test_id, reason)
                return True, False
            case Failed(errors=errors):
                test.errors.extend(
                    f"{test.test_id}: {e}" for e in [*errors, *soft_errors]
                )
            case Passed():
                test.errors.extend(f"{test.test_id}: {e}" for e in soft_errors)
                if output and not test.errors:
                    first_line = next(iter(output.strip().splitlines()), "")
                    test.errors.append(
                        f"{test.test_id}: unexpected output after the test: "
                        f"{first_line!r}"
                    )
        return False, False

    async def _hook(self, test: TestCase, name: str) -> None:
        hook = self.runtime.lookup(name)
        if hook is None:
            return
        try:
            await self.runtime.call_hook(hook)
        except HostExitError:
            raise
        except Exception as e:
            test.errors.append(
                f"Caught exception in {name}() for {test.test_id}: "
                f"{describe_exception(e)}"
            )

    async def _step(
        self, test: TestCase, what: str, action: Callable[[], Awaitable[object]]
    ) -> None:
        try:
            await action()
        except HostExitError:
            raise
        except Exception as e:
            test.errors.append(
                f"Caught exception during {what} for {test.test_id}: "
                f"{describe_exception(e)}"
            )

    async def _cleanup(self, test: TestCase) -> None:
        """Close leftovers until a pass makes no progress, then force."""
        for _ in range(self.config.max_close_passes):
            try:
                closed = await self.runtime.close_extra_windows()
            except Exception as e:
                log.warning("Close pass failed for %s: %s", test.test_id, e)
                break
            if closed == 0:
                break
        else:
            log.warning(
                "Cleanup of %s still closing after %d passes, forcing",
                test.test_id,
                self.config.max_close_passes,
            )
        await self._step(test, "buffer wipe", self.runtime.wipe_buffers)
        await self._step(test, "forced cleanup", self.runtime.force_cleanup)
