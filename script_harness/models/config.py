"""Configuration for the test harness engine."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field


class HarnessConfig(BaseModel):
    """Engine settings shared by all runtimes."""

    model_config = ConfigDict(frozen=True)

    prefix: str = Field(default="Test_", description="Name prefix of test functions")
    timeout: float = Field(
        default=60.0, gt=0, description="Per-test deadline in seconds"
    )
    timeout_grace: float = Field(
        default=5.0,
        ge=0,
        description="Seconds a cancelled test gets before the process is aborted",
    )
    max_retries: int = Field(
        default=10, ge=0, description="Extra attempts for failures"
    )
    retry_delay: float = Field(default=2.0, ge=0, description="Pause between attempts")
    no_retry: bool = Field(default=False, description="Disable retries unconditionally")
    coverage: bool = Field(default=False, description="Record coverage of the script")
    max_close_passes: int = Field(
        default=10, ge=1, description="Upper bound of isolation cleanup close passes"
    )
    output_dir: Path = Field(default=Path("."), description="Where artifacts go")
    failure_log_name: str = Field(default="test.log")
    message_log_name: str = Field(default="messages")
    marker_suffix: str = Field(default=".res")

    @property
    def retries_enabled(self) -> bool:
        """Whether failed tests are attempted again."""
        return not self.no_retry and self.max_retries > 0

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> Self:
        """Build the configuration from environment toggles.

        ``TEST_NO_RETRY`` disables retries unless empty or ``"0"``;
        ``COVERAGE`` enables coverage by its mere presence. Explicit
        overrides win over the environment.
        """
        if environ is None:
            environ = os.environ
        values: dict[str, Any] = {
            "no_retry": environ.get("TEST_NO_RETRY", "") not in ("", "0"),
            "coverage": "COVERAGE" in environ,
        }
        values.update(overrides)
        return cls(**values)
