"""Exceptions raised by the harness and formatting of caught exceptions."""

import traceback


class HarnessError(Exception):
    """Base class for harness errors."""


class ScriptLoadError(HarnessError):
    """Raised when evaluating a test script fails."""


class HostExitError(HarnessError):
    """Raised when test code tries to terminate the host process."""


class TestCancelledError(HarnessError):
    """Raised inside a test body that observed its cancellation token."""

    __test__ = False


def describe_exception(exc: BaseException) -> str:
    """Format an exception as ``Type: message @ file:line``.

    The location is the innermost traceback frame, which for test code is the
    line that raised. Syntax errors carry their own location.
    """
    if isinstance(exc, SyntaxError):
        return f"SyntaxError: {exc.msg} @ {exc.filename}:{exc.lineno}"
    text = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return text
    frame = frames[-1]
    return f"{text} @ {frame.filename}:{frame.lineno}"
