"""Discovery of installed test runtimes through entry points."""

from collections.abc import Sequence
from importlib.metadata import entry_points
from typing import Any

from script_harness.runtimes.manifest import RuntimeManifest

ENTRY_POINT_GROUP = "script_harness.runtimes"


class RuntimeNotFoundError(Exception):
    """Raised when no installed runtime has the requested key."""


def available_runtimes() -> Sequence[str]:
    """Keys of the installed runtimes, sorted."""
    return sorted({entry.name for entry in entry_points(group=ENTRY_POINT_GROUP)})


def load_runtime_manifest(key: str) -> RuntimeManifest[Any]:
    """Import the manifest of the runtime registered under ``key``.

    Runtimes register in the ``script_harness.runtimes`` entry point group;
    only the selected one is imported.

    Raises:
        RuntimeNotFoundError: If no runtime with the given key is installed

    """
    matches = entry_points(group=ENTRY_POINT_GROUP, name=key)
    if not matches:
        raise RuntimeNotFoundError(
            f"Runtime '{key}' not found. Available runtimes: "
            f"{', '.join(available_runtimes()) or 'none'}"
        )
    manifest: RuntimeManifest[Any] = next(iter(matches)).load()
    return manifest
