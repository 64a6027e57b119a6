"""The ``harness`` object available to test scripts."""

import inspect
import unittest
from collections import defaultdict
from dataclasses import dataclass, field
from io import StringIO
from typing import Any, NoReturn


@dataclass(kw_only=True)
class ScriptState:
    """Per-test state shared between the runtime and the script API."""

    errors: list[str] = field(default_factory=list)
    logs: defaultdict[str, list[str]] = field(
        default_factory=lambda: defaultdict(list)
    )
    tracked: list[Any] = field(default_factory=list)
    scratch: dict[str, Any] = field(default_factory=dict)
    output: StringIO = field(default_factory=StringIO)

    def clear_output(self) -> None:
        """Truncate captured output in place, it may still be redirected."""
        self.output.seek(0)
        self.output.truncate()


class ScriptApi:
    """Helpers injected into every script as ``harness``."""

    def __init__(self, state: ScriptState) -> None:
        self._state = state

    @property
    def scratch(self) -> dict[str, Any]:
        """Transient storage, wiped after every test."""
        return self._state.scratch

    def skip(self, reason: str) -> NoReturn:
        """Stop the running test and report it as skipped."""
        raise unittest.SkipTest(reason)

    def fail(self, message: str) -> None:
        """Record an error without stopping the test."""
        caller = inspect.stack()[1]
        self._state.errors.append(f"{message} @ {caller.filename}:{caller.lineno}")

    def expect(self, condition: object, message: str = "Expectation failed") -> bool:
        """Record an error unless ``condition`` holds."""
        if condition:
            return True
        caller = inspect.stack()[1]
        self._state.errors.append(f"{message} @ {caller.filename}:{caller.lineno}")
        return False

    def clear_output(self) -> None:
        """Acknowledge output written so far so it does not fail the test."""
        self._state.clear_output()

    def log(self, source: str, line: str) -> None:
        """Append a line to the diagnostic log named ``source``."""
        self._state.logs[source].append(line)

    def track[T](self, resource: T) -> T:
        """Register a resource to be closed after the test."""
        self._state.tracked.append(resource)
        return resource
