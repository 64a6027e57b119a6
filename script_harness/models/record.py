"""Aggregated results of one harness invocation."""

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal


@dataclass(frozen=True, kw_only=True)
class FailureEntry:
    """A failed test and the messages explaining why."""

    test_id: str
    messages: Sequence[str]


@dataclass(frozen=True, kw_only=True)
class OutcomeEntry:
    """Terminal status of one test."""

    test_id: str
    status: Literal["passed", "failed", "skipped", "aborted"]
    duration: float = 0.0
    retries: int = 0


@dataclass(frozen=True, kw_only=True)
class SkipEntry:
    """A skipped test and its reason."""

    test_id: str
    reason: str


@dataclass(kw_only=True)
class RunRecord:
    """Counters and entries collected over a run.

    Owned by the orchestrator and passed explicitly to the retry controller
    and the reporter.
    """

    executed: int = 0
    outcomes: list[OutcomeEntry] = field(default_factory=list)
    failures: list[FailureEntry] = field(default_factory=list)
    skips: list[SkipEntry] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    @property
    def failed(self) -> int:
        """Number of recorded failures."""
        return len(self.failures)

    @property
    def elapsed(self) -> float:
        """Seconds since the record was created."""
        return time.monotonic() - self.started_at

    def add_failure(self, test_id: str, messages: Sequence[str]) -> None:
        """Record a failed test."""
        self.failures.append(FailureEntry(test_id=test_id, messages=tuple(messages)))

    def add_skip(self, test_id: str, reason: str) -> None:
        """Record a skipped test."""
        self.skips.append(SkipEntry(test_id=test_id, reason=reason))

    def add_message(self, message: str) -> None:
        """Record an informational message."""
        self.messages.append(message)

    def add_outcome(
        self,
        test_id: str,
        status: Literal["passed", "failed", "skipped", "aborted"],
        duration: float = 0.0,
        retries: int = 0,
    ) -> None:
        """Count a test as executed with its terminal status."""
        self.executed += 1
        self.outcomes.append(
            OutcomeEntry(
                test_id=test_id, status=status, duration=duration, retries=retries
            )
        )
