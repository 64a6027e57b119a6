"""Python runtime manifest."""

from script_harness.runtimes.manifest import RuntimeManifest
from script_harness.runtimes.python.config import PythonRuntimeConfig
from script_harness.runtimes.python.runtime import PythonRuntime

python_runtime_manifest = RuntimeManifest(
    config_cls=PythonRuntimeConfig,
    runtime_factory=PythonRuntime.from_config,
)
