"""Report sinks and batch logs for operator-visible synchronisation outcomes."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger
    from pathlib import Path

    from syncdock.config import StorageConfig
    from syncdock.domain.model import ReportEntry

log = getLogger(__name__)


class LoggingReportSink:
    """Writes report entries to a dedicated logger and keeps the latest ones."""

    def __init__(self, logger: Logger | None = None, *, history: int = 200) -> None:
        self.logger = logger or getLogger("syncdock.reports")
        self._entries: deque[ReportEntry] = deque(maxlen=history)

    def report(self, entry: ReportEntry) -> None:
        self._entries.append(entry)
        if entry.is_error:
            self.logger.error("[%s] %s", entry.transaction_id, entry.message)
        else:
            self.logger.info("[%s] %s", entry.transaction_id, entry.message)

    def recent(self, transaction_id: str | None = None) -> list[ReportEntry]:
        return [
            entry
            for entry in self._entries
            if transaction_id is None or entry.transaction_id == transaction_id
        ]


@dataclass(slots=True)
class FileBatchLogWriter:
    """Writes the lines of a batch action to ``<connector>_resync.log``."""

    storage: StorageConfig
    now: datetime | None = None

    def __call__(self, connector_name: str, lines: Sequence[str]) -> Path:
        path = self.storage.batch_log_path(connector_name)
        stamp = (self.now or datetime.now(UTC)).isoformat(timespec="seconds")
        with path.open("w", encoding="utf-8") as handle:
            handle.write(f"# {connector_name} resync on {stamp}\n")
            for line in lines:
                handle.write(f"{line}\n")
        log.info("Wrote %s batch lines to %s", len(lines), path)
        return path


if TYPE_CHECKING:
    from syncdock.domain.ports import ReportSink

    _sink_check: ReportSink = LoggingReportSink()
