"""Operator-visible report sink."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from syncdock.domain.model import ReportEntry


@runtime_checkable
class ReportSink(Protocol):
    def report(self, entry: ReportEntry) -> None: ...
