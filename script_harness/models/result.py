"""Models for test body outcomes and lifecycle attempt results."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal


@dataclass(frozen=True, kw_only=True)
class Passed:
    """The test body returned normally."""


@dataclass(frozen=True, kw_only=True)
class Failed:
    """The test body raised, errors are already formatted."""

    errors: Sequence[str]


@dataclass(frozen=True, kw_only=True)
class Skipped:
    """The test body asked to be skipped."""

    reason: str


type BodyOutcome = Passed | Failed | Skipped


@dataclass(frozen=True, kw_only=True)
class AttemptResult:
    """Result of a single lifecycle run of one test.

    The test it belongs to is known to the caller and not repeated here.
    """

    status: Literal["passed", "failed", "skipped"]
    errors: Sequence[str] = ()
    skip_reason: str | None = None
    duration: float = 0.0
    timed_out: bool = False
    logs: Mapping[str, str] = field(default_factory=dict)
