"""Configuration for the Python runtime."""

from pydantic import BaseModel


class PythonRuntimeConfig(BaseModel):
    """Configuration for the in-process Python runtime."""

    capture_output: bool = True
    # Environment variables changed by a test are undone before the next one
    restore_environ: bool = True
