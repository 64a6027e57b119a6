"""Bounded re-execution of failing tests."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from script_harness.lifecycle import LifecycleRunner
from script_harness.models.case import TestCase
from script_harness.models.record import RunRecord
from script_harness.models.result import AttemptResult

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class RetryController:
    """Re-runs failed tests so flaky ones get another chance.

    Messages of every failed attempt that is retried go to the run's message
    log, so flaky history stays visible when the test eventually passes.
    Timed out attempts are not retried.
    """

    runner: LifecycleRunner
    max_retries: int = 10
    delay: float = 2.0
    enabled: bool = True
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run_with_retry(
        self, test: TestCase, record: RunRecord
    ) -> AttemptResult:
        """Run ``test`` until it stops failing or the retry bound is reached."""
        result = await self.runner.run_once(test)
        allowed = self.max_retries if self.enabled else 0

        while (
            result.status == "failed"
            and not result.timed_out
            and test.retries < allowed
        ):
            record.add_message(f"Found errors in {test.test_id}:")
            record.messages.extend(f"  {error}" for error in result.errors)
            record.add_message("Flaky test failed, running it again")
            log.info(
                "%s failed, retrying (%d/%d)", test.test_id, test.retries + 1, allowed
            )
            await self.sleep(self.delay)
            test.retries += 1
            test.errors.clear()
            result = await self.runner.run_once(test)

        return result
