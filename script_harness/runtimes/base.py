"""Abstract base class for test runtimes."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from script_harness.cancellation import CancellationToken
from script_harness.models.result import BodyOutcome


class TestRuntime(ABC):
    """Abstract base for environments that execute test code.

    The engine never touches ambient state directly; everything that loads
    scripts, runs code or resets shared state goes through a runtime.
    """

    __test__ = False

    @abstractmethod
    def load_script(self, path: Path) -> None:
        """Evaluate the script once, defining its functions.

        Raises:
            ScriptLoadError: If evaluating the script raised
            HostExitError: If the script tried to terminate the process

        """

    @abstractmethod
    def lookup(self, name: str) -> Callable[..., Any] | None:
        """Return the function defined under ``name``, if any."""

    @abstractmethod
    async def invoke(
        self, func: Callable[..., Any], token: CancellationToken
    ) -> BodyOutcome:
        """Run a test body and classify how it ended.

        Raises:
            HostExitError: If the body tried to terminate the process

        """

    @abstractmethod
    async def call_hook(self, func: Callable[..., Any]) -> None:
        """Run a setup or teardown hook, letting its exceptions propagate."""

    @abstractmethod
    def take_errors(self) -> list[str]:
        """Return and forget soft errors recorded by the running test."""

    @abstractmethod
    def pending_output(self) -> str:
        """Return diagnostic output the test produced and did not clear."""

    @abstractmethod
    def clear_output(self) -> None:
        """Discard pending diagnostic output."""

    @abstractmethod
    def collect_logs(self) -> Mapping[str, str]:
        """Return diagnostic logs of the current test keyed by log source."""

    @abstractmethod
    async def reset_isolation(self) -> None:
        """Return shared state to the baseline before a test."""

    @abstractmethod
    async def close_extra_windows(self) -> int:
        """Close resources opened by the test.

        Returns:
            Number of resources closed in this pass

        """

    @abstractmethod
    async def wipe_buffers(self) -> None:
        """Discard transient data left by the test."""

    @abstractmethod
    async def force_cleanup(self) -> None:
        """Drop whatever the close passes could not release."""
