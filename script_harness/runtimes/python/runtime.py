"""In-process runtime executing Python test scripts."""

import asyncio
import inspect
import logging
import os
import sys
import unittest
from collections.abc import AsyncGenerator, Callable, Iterator, Mapping
from contextlib import (
    ExitStack,
    asynccontextmanager,
    contextmanager,
    redirect_stderr,
    redirect_stdout,
)
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from script_harness.cancellation import CancellationToken
from script_harness.errors import HostExitError, ScriptLoadError, describe_exception
from script_harness.models.result import BodyOutcome, Failed, Passed, Skipped
from script_harness.runtimes.base import TestRuntime
from script_harness.runtimes.python.api import ScriptApi, ScriptState
from script_harness.runtimes.python.config import PythonRuntimeConfig

log = logging.getLogger(__name__)

SKIP_MARKER = "skipped"
TOKEN_PARAMETER = "cancel_token"


def skip_reason(message: str) -> str | None:
    """Return the skip reason if ``message`` carries the skip marker."""
    if not message.lower().startswith(SKIP_MARKER):
        return None
    return message[len(SKIP_MARKER) :].lstrip(": \t")


def accepts_token(func: Callable[..., Any]) -> bool:
    """Check whether a test body takes a cancellation token."""
    try:
        parameters = inspect.signature(func).parameters
    except (TypeError, ValueError):
        return False
    return TOKEN_PARAMETER in parameters


@dataclass(kw_only=True)
class PythonRuntime(TestRuntime):
    """Runs test scripts in this interpreter.

    Async bodies run as tasks on the harness loop and are cancelled through
    the token. Sync bodies run on a worker thread and stop only if they poll
    the token passed as ``cancel_token``.
    """

    config: PythonRuntimeConfig
    state: ScriptState = field(default_factory=ScriptState, init=False)
    namespace: dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _environ: dict[str, str] | None = field(default=None, init=False, repr=False)
    _sys_path_entry: str | None = field(default=None, init=False, repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: PythonRuntimeConfig
    ) -> AsyncGenerator["PythonRuntime", None]:
        """Create runtime and undo its interpreter changes on exit."""
        runtime = cls(config=config)
        try:
            yield runtime
        finally:
            runtime.unload()

    @property
    def api(self) -> ScriptApi:
        """Script-facing helpers bound to the current state."""
        return ScriptApi(self.state)

    @contextmanager
    def capture(self) -> Iterator[None]:
        """Redirect stdout and stderr into the captured output."""
        with ExitStack() as stack:
            if self.config.capture_output:
                stack.enter_context(redirect_stdout(self.state.output))
                stack.enter_context(redirect_stderr(self.state.output))
            yield

    def load_script(self, path: Path) -> None:
        """Evaluate the script in a fresh namespace."""
        log.debug("Loading script %s", path)
        namespace: dict[str, Any] = {
            "__name__": path.stem,
            "__file__": str(path),
            "harness": self.api,
        }
        self.namespace = namespace
        script_dir = str(path.resolve().parent)
        if script_dir not in sys.path:
            sys.path.insert(0, script_dir)
            self._sys_path_entry = script_dir

        try:
            source = path.read_text(encoding="utf-8")
            with self.capture():
                exec(compile(source, str(path), "exec"), namespace)
        except SystemExit as e:
            raise HostExitError(f"exit status {e.code}") from e
        except Exception as e:
            raise ScriptLoadError(describe_exception(e)) from e
        finally:
            self._environ = dict(os.environ)
            self.state.clear_output()

    def unload(self) -> None:
        """Forget the script and restore the import path."""
        self.namespace = {}
        if self._sys_path_entry is not None and self._sys_path_entry in sys.path:
            sys.path.remove(self._sys_path_entry)
        self._sys_path_entry = None

    def lookup(self, name: str) -> Callable[..., Any] | None:
        """Return a callable defined by the script."""
        obj = self.namespace.get(name)
        return obj if callable(obj) else None

    async def invoke(
        self, func: Callable[..., Any], token: CancellationToken
    ) -> BodyOutcome:
        """Run the body with captured output and classify the outcome."""
        kwargs = {TOKEN_PARAMETER: token} if accepts_token(func) else {}

        with self.capture():
            try:
                if inspect.iscoroutinefunction(func):
                    await self._run_coroutine(func(**kwargs), token)
                else:
                    await asyncio.to_thread(func, **kwargs)
            except SystemExit as e:
                raise HostExitError(f"exit status {e.code}") from e
            except unittest.SkipTest as e:
                return Skipped(reason=str(e))
            except asyncio.CancelledError:
                if not token.cancelled:
                    raise
                return Failed(errors=("Test was cancelled after its deadline",))
            except Exception as e:
                if (reason := skip_reason(str(e))) is not None:
                    return Skipped(reason=reason)
                return Failed(errors=(describe_exception(e),))

        return Passed()

    async def _run_coroutine(self, coro: Any, token: CancellationToken) -> None:
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(coro)
        token.add_callback(lambda: loop.call_soon_threadsafe(task.cancel))
        await task

    async def call_hook(self, func: Callable[..., Any]) -> None:
        """Run a hook on the loop thread with its output captured."""
        try:
            with self.capture():
                if inspect.iscoroutinefunction(func):
                    await func()
                else:
                    func()
        except SystemExit as e:
            raise HostExitError(f"exit status {e.code}") from e

    def take_errors(self) -> list[str]:
        """Return and forget soft errors."""
        errors, self.state.errors = self.state.errors, []
        return errors

    def pending_output(self) -> str:
        """Return captured output not cleared by the test."""
        return self.state.output.getvalue()

    def clear_output(self) -> None:
        """Discard captured output."""
        self.state.clear_output()

    def collect_logs(self) -> Mapping[str, str]:
        """Return diagnostic logs written through ``harness.log``."""
        return {
            source: "".join(f"{line}\n" for line in lines)
            for source, lines in self.state.logs.items()
            if lines
        }

    async def reset_isolation(self) -> None:
        """Restore the environment and start from empty per-test state."""
        if self.config.restore_environ and self._environ is not None:
            os.environ.clear()
            os.environ.update(self._environ)
        self.state.errors.clear()
        self.state.logs.clear()
        self.state.clear_output()

    async def close_extra_windows(self) -> int:
        """Close resources registered through ``harness.track``."""
        closed = 0
        for resource in list(self.state.tracked):
            try:
                if hasattr(resource, "aclose"):
                    await resource.aclose()
                elif hasattr(resource, "close"):
                    resource.close()
                else:
                    resource.__exit__(None, None, None)
            except Exception as e:
                log.warning("Failed to close %r: %s", resource, e)
                continue
            self.state.tracked.remove(resource)
            closed += 1
        return closed

    async def wipe_buffers(self) -> None:
        """Wipe ``harness.scratch``."""
        self.state.scratch.clear()

    async def force_cleanup(self) -> None:
        """Abandon resources that refused to close."""
        if self.state.tracked:
            log.warning(
                "Abandoning %d resource(s) that could not be closed",
                len(self.state.tracked),
            )
        self.state.tracked.clear()
