"""Coverage side-channel started and stopped around a run."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import coverage

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class CoverageRecorder:
    """Records which lines of the test script ran."""

    data_file: Path
    include: Sequence[str] = ()
    _coverage: coverage.Coverage | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        """Whether coverage is being recorded."""
        return self._coverage is not None

    def start(self) -> None:
        """Begin recording."""
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        self._coverage = coverage.Coverage(
            data_file=str(self.data_file),
            include=list(self.include) or None,
        )
        self._coverage.start()
        log.info("Recording coverage to %s", self.data_file)

    def stop(self) -> None:
        """Stop recording and persist the data."""
        if self._coverage is None:
            return
        self._coverage.stop()
        self._coverage.save()
        self._coverage = None
        log.info("Saved coverage data to %s", self.data_file)
