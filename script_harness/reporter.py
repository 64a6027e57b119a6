"""Durable report artifacts of a harness run."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from script_harness.models.case import TestCase
from script_harness.models.config import HarnessConfig
from script_harness.models.record import RunRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class Reporter:
    """Appends run results to cumulative logs and writes the success marker.

    Every write opens the file, appends whole lines and closes it again, so
    logs are never truncated and readers never see half a run.
    """

    output_dir: Path
    failure_log_name: str = "test.log"
    message_log_name: str = "messages"
    marker_suffix: str = ".res"

    @classmethod
    def from_config(cls, config: HarnessConfig) -> "Reporter":
        """Create a reporter writing where the configuration says."""
        return cls(
            output_dir=config.output_dir,
            failure_log_name=config.failure_log_name,
            message_log_name=config.message_log_name,
            marker_suffix=config.marker_suffix,
        )

    @property
    def failure_log(self) -> Path:
        """Cumulative log of failures."""
        return self.output_dir / self.failure_log_name

    @property
    def message_log(self) -> Path:
        """Cumulative log of run summaries."""
        return self.output_dir / self.message_log_name

    def marker_path(self, script: Path) -> Path:
        """Marker file signalling that ``script`` passed."""
        return self.output_dir / f"{script.stem}{self.marker_suffix}"

    def finish(self, script: Path, record: RunRecord) -> None:
        """Write all artifacts of a finished run."""
        if record.failed == 0:
            self.write_marker(script)
        else:
            self.append_failures(script, record)
        self.append_messages(script, record)

    def write_marker(self, script: Path) -> None:
        """Create the empty success marker."""
        marker = self.marker_path(script)
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_bytes(b"")
        log.info("Wrote success marker %s", marker)

    def append_failures(self, script: Path, record: RunRecord) -> None:
        """Append every failure of the run to the failure log."""
        lines = ["", f"From {script.name}:"]
        lines.extend(format_failures(record))
        self._append(self.failure_log, lines)
        log.info("Appended %d failure(s) to %s", record.failed, self.failure_log)

    def append_messages(self, script: Path, record: RunRecord) -> None:
        """Append the run summary to the message log."""
        lines = ["", f"From {script.name}:"]
        lines.extend(record.messages)
        if record.executed:
            lines.append(
                f"Executed {record.executed} tests in {record.elapsed:.3f} seconds"
            )
        else:
            lines.append("NO tests executed")
        if record.failed:
            lines.append(f"{record.failed} FAILED:")
            lines.extend(format_failures(record))
        lines.extend(f"SKIPPED {skip.test_id}: {skip.reason}" for skip in record.skips)
        self._append(self.message_log, lines)

    def dump_logs(self, case: TestCase, logs: Mapping[str, str]) -> list[Path]:
        """Write each diagnostic log of a failed test to its own file."""
        written: list[Path] = []
        for source, text in logs.items():
            path = self.output_dir / f"{case.source.stem}_{case.name}_{source}.testlog"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            written.append(path)
        if written:
            log.info("Dumped %d diagnostic log(s) for %s", len(written), case.test_id)
        return written

    def _append(self, path: Path, lines: Iterable[str]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as stream:
            stream.write("".join(f"{line}\n" for line in lines))


def format_failures(record: RunRecord) -> list[str]:
    """Render failure entries as log lines."""
    lines: list[str] = []
    for failure in record.failures:
        lines.append(f"Found errors in {failure.test_id}:")
        lines.extend(f"  {message}" for message in failure.messages)
    return lines
