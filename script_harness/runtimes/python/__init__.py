"""Python runtime module."""

from script_harness.runtimes.python.config import PythonRuntimeConfig
from script_harness.runtimes.python.manifest import python_runtime_manifest
from script_harness.runtimes.python.runtime import PythonRuntime

__all__ = ["PythonRuntime", "PythonRuntimeConfig", "python_runtime_manifest"]
