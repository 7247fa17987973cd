from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from syncdock.adapters.reporting import FileBatchLogWriter, LoggingReportSink
from syncdock.config import StorageConfig
from syncdock.domain.model import ReportEntry

if TYPE_CHECKING:
    from pathlib import Path

    import pytest


def test_logging_sink_logs_by_severity(caplog: pytest.LogCaptureFixture) -> None:
    sink = LoggingReportSink(history=2)

    with caplog.at_level(logging.INFO, logger="syncdock.reports"):
        sink.report(ReportEntry(transaction_id="a", message="Resync started..."))
        sink.report(ReportEntry(transaction_id="b", message="boom", is_error=True))
        sink.report(ReportEntry(transaction_id="b", message="done"))

    assert [(record.levelno, record.getMessage()) for record in caplog.records] == [
        (logging.INFO, "[a] Resync started..."),
        (logging.ERROR, "[b] boom"),
        (logging.INFO, "[b] done"),
    ]
    assert [entry.message for entry in sink.recent()] == ["boom", "done"]
    assert sink.recent("a") == []


def test_batch_log_writer_writes_one_line_per_item(tmp_path: Path) -> None:
    writer = FileBatchLogWriter(
        StorageConfig(data_dir=tmp_path), now=datetime(2024, 5, 17, 4, 0, tzinfo=UTC)
    )

    path = writer("Redmine Prod", ["Root record 1 checked", ">>Error with root record 2"])

    assert path == tmp_path.resolve() / "redmine_prod_resync.log"
    assert path.read_text(encoding="utf-8").splitlines() == [
        "# Redmine Prod resync on 2024-05-17T04:00:00+00:00",
        "Root record 1 checked",
        ">>Error with root record 2",
    ]
