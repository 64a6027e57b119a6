"""Models for discovered test cases."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

TestStatus = Literal["pending", "running", "passed", "failed", "skipped", "aborted"]


@dataclass(kw_only=True)
class TestCase:
    """One discovered test procedure and its run state."""

    __test__ = False

    name: str
    source: Path
    status: TestStatus = "pending"
    errors: list[str] = field(default_factory=list)
    retries: int = 0
    skip_reason: str | None = None

    @property
    def test_id(self) -> str:
        """Fully qualified identifier, source path plus name."""
        return f"{self.source}::{self.name}"
