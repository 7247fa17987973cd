"""Diff-based reconciliation of internal records against an external record set.

One pass covers one scope: the children of a single parent link. The pass
starts from every child link already registered under the scope, crosses off
the external records that are still reported, upserts them, and finally
deletes whatever was not crossed off. Without a change feed on the remote
side this is what keeps out-of-band deletes, renames and moves in sync, and
re-running an unchanged pass is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from syncdock.domain.errors import LinkError, SyncError
from syncdock.domain.model import LinkRecord, ReportEntry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from syncdock.domain.model import ExternalRecord, ReconciliationScope
    from syncdock.domain.ports import LinkRegistry, ReportSink

log = getLogger(__name__)


@runtime_checkable
class RecordAdapter(Protocol):
    """Vendor and record-type specific half of a reconciliation pass."""

    def fetch_external_children(self, scope: ReconciliationScope) -> Sequence[ExternalRecord]: ...

    def accepts(self, record: ExternalRecord) -> bool: ...

    def upsert_internal(self, record: ExternalRecord, existing_internal_id: int | None) -> int: ...

    def delete_internal(self, internal_id: int) -> None: ...


@dataclass(slots=True)
class ReconciliationResult:
    scope: ReconciliationScope
    fetched: int = 0
    skipped: int = 0
    created: list[int] = field(default_factory=list[int])
    updated: list[int] = field(default_factory=list[int])
    deleted: list[int] = field(default_factory=list[int])
    rejected: list[str] = field(default_factory=list[str])

    @property
    def changed(self) -> bool:
        return bool(self.created or self.deleted or self.rejected)


@dataclass(slots=True)
class ReconciliationEngine:
    links: LinkRegistry

    def reconcile(
        self,
        scope: ReconciliationScope,
        adapter: RecordAdapter,
    ) -> ReconciliationResult:
        """Run one pass for ``scope``; errors from the fetch propagate untouched."""

        result = ReconciliationResult(scope=scope)
        to_remove = {
            external_id: internal_id
            for internal_id, external_id in self.links.find_child_links(
                scope.parent, scope.child_relation_type
            )
        }

        records = adapter.fetch_external_children(scope)
        result.fetched = len(records)

        for record in records:
            if not adapter.accepts(record):
                result.skipped += 1
                continue
            to_remove.pop(record.external_id, None)
            existing_id = self.links.resolve_internal_id(
                record.external_id, scope.child_relation_type, scope.parent
            )
            internal_id = adapter.upsert_internal(record, existing_id)
            if existing_id is not None:
                if internal_id == existing_id:
                    result.updated.append(internal_id)
                    continue
                # the linked internal record was gone and the adapter recreated it
                self.links.delete_link(existing_id, record.external_id, scope.child_relation_type)
            link = LinkRecord(
                internal_id=internal_id,
                external_id=record.external_id,
                relation_type=scope.child_relation_type,
                parent=scope.parent,
            )
            try:
                self.links.create_link(link)
            except LinkError:
                log.warning(
                    "Impossible to create the link for %s (%s); removing internal record %s",
                    record.external_id,
                    scope.describe(),
                    internal_id,
                    exc_info=True,
                )
                adapter.delete_internal(internal_id)
                result.rejected.append(record.external_id)
                continue
            result.created.append(internal_id)

        for external_id, internal_id in to_remove.items():
            adapter.delete_internal(internal_id)
            self.links.delete_link(internal_id, external_id, scope.child_relation_type)
            result.deleted.append(internal_id)

        log.debug(
            "Reconciled %s: fetched=%s skipped=%s created=%s updated=%s deleted=%s",
            scope.describe(),
            result.fetched,
            result.skipped,
            len(result.created),
            len(result.updated),
            len(result.deleted),
        )
        return result


@dataclass(frozen=True, slots=True, kw_only=True)
class ScopeJob:
    """A deferred pass over one scope, run in isolation from its siblings."""

    scope: ReconciliationScope
    root_id: int
    label: str
    run: Callable[[], ReconciliationResult]


@dataclass(slots=True)
class PassSummary:
    transaction_id: str
    results: list[ReconciliationResult] = field(default_factory=list[ReconciliationResult])
    failures: list[ReportEntry] = field(default_factory=list[ReportEntry])

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def extend(self, other: PassSummary) -> None:
        self.results.extend(other.results)
        self.failures.extend(other.failures)


def reconcile_scopes(
    jobs: Iterable[ScopeJob],
    *,
    transaction_id: str,
    report_sink: ReportSink,
) -> PassSummary:
    """Run every job, turning each failure into a report instead of an abort."""

    summary = PassSummary(transaction_id=transaction_id)
    for job in jobs:
        try:
            result = job.run()
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, SyncError):
                log.warning("Reconciliation of %s failed: %s", job.scope.describe(), exc)
            else:
                log.exception("Reconciliation of %s failed", job.scope.describe())
            entry = ReportEntry(
                transaction_id=transaction_id,
                root_id=job.root_id,
                is_error=True,
                error=exc,
                message=(
                    f"An error has occurred when loading the {job.label} for the root record "
                    f"{job.root_id}. The message returned by the remote system is: {exc}"
                ),
            )
            report_sink.report(entry)
            summary.failures.append(entry)
            continue
        summary.results.append(result)
    return summary
