from __future__ import annotations

import pytest

from syncdock.domain.errors import RemoteApiError
from syncdock.domain.model import LinkRecord, ParentLink, ReconciliationScope, RelationType
from syncdock.domain.reconciliation import ReconciliationEngine, ScopeJob, reconcile_scopes
from tests.helpers.sync import (
    FakeRecordAdapter,
    InMemoryLinkRegistry,
    RecordingReportSink,
    issue,
)

ROOT = ParentLink(internal_id=1, external_id="P-1", relation_type=RelationType.PORTFOLIO_ENTRY)
NEEDS = ReconciliationScope(parent=ROOT, child_relation_type=RelationType.PORTFOLIO_ENTRY_NEED)


@pytest.fixture
def links() -> InMemoryLinkRegistry:
    registry = InMemoryLinkRegistry()
    registry.create_link(
        LinkRecord(internal_id=1, external_id="P-1", relation_type=RelationType.PORTFOLIO_ENTRY)
    )
    return registry


def test_first_pass_creates_records_and_links(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A"), issue("B")])

    result = ReconciliationEngine(links).reconcile(NEEDS, adapter)

    assert result.fetched == 2
    assert len(result.created) == 2
    children = links.find_child_links(ROOT, NEEDS.child_relation_type)
    assert sorted(external for _, external in children) == ["A", "B"]
    assert len(adapter.store) == 2


def test_second_pass_is_idempotent(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A"), issue("B")])
    engine = ReconciliationEngine(links)
    engine.reconcile(NEEDS, adapter)
    before = list(links.links)
    ids_before = dict(adapter.store)

    result = engine.reconcile(NEEDS, adapter)

    assert links.links == before
    assert adapter.store.keys() == ids_before.keys()
    assert result.created == []
    assert result.deleted == []
    assert sorted(result.updated) == sorted(ids_before)
    assert not result.changed


def test_identity_survives_renames(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A", name="Before")])
    engine = ReconciliationEngine(links)
    engine.reconcile(NEEDS, adapter)
    internal_id = links.resolve_internal_id("A", NEEDS.child_relation_type, ROOT)

    adapter.records = [issue("A", name="After")]
    engine.reconcile(NEEDS, adapter)

    assert links.resolve_internal_id("A", NEEDS.child_relation_type, ROOT) == internal_id
    assert internal_id is not None
    assert adapter.store[internal_id] == issue("A", name="After")
    assert adapter.upserts[-1] == ("A", internal_id)


def test_records_missing_remotely_are_deleted(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A"), issue("B")])
    engine = ReconciliationEngine(links)
    engine.reconcile(NEEDS, adapter)
    removed_id = links.resolve_internal_id("B", NEEDS.child_relation_type, ROOT)

    adapter.records = [issue("A")]
    result = engine.reconcile(NEEDS, adapter)

    assert result.deleted == [removed_id]
    assert removed_id not in adapter.store
    assert links.resolve_internal_id("B", NEEDS.child_relation_type, ROOT) is None


def test_returning_record_gets_a_new_internal_id(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A"), issue("B")])
    engine = ReconciliationEngine(links)
    engine.reconcile(NEEDS, adapter)
    old_id = links.resolve_internal_id("B", NEEDS.child_relation_type, ROOT)
    adapter.records = [issue("A")]
    engine.reconcile(NEEDS, adapter)

    adapter.records = [issue("A"), issue("B")]
    result = engine.reconcile(NEEDS, adapter)

    new_id = links.resolve_internal_id("B", NEEDS.child_relation_type, ROOT)
    assert old_id is not None
    assert new_id is not None
    assert new_id != old_id
    assert result.created == [new_id]
    assert adapter.upserts[-1] == ("B", None)
    assert old_id not in adapter.store


def test_filtered_records_count_as_missing(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A"), issue("B")])
    engine = ReconciliationEngine(links)
    engine.reconcile(NEEDS, adapter)

    adapter.rejected_ids = {"A"}
    result = engine.reconcile(NEEDS, adapter)

    assert result.skipped == 1
    assert len(result.deleted) == 1
    children = links.find_child_links(ROOT, NEEDS.child_relation_type)
    assert [external for _, external in children] == ["B"]


def test_same_external_id_under_two_parents_stays_distinct(links: InMemoryLinkRegistry) -> None:
    links.create_link(
        LinkRecord(internal_id=2, external_id="P-2", relation_type=RelationType.PORTFOLIO_ENTRY)
    )
    other_parent = ParentLink(
        internal_id=2, external_id="P-2", relation_type=RelationType.PORTFOLIO_ENTRY
    )
    other_scope = ReconciliationScope(
        parent=other_parent, child_relation_type=RelationType.PORTFOLIO_ENTRY_NEED
    )
    adapter = FakeRecordAdapter(records=[issue("X")])
    engine = ReconciliationEngine(links)

    engine.reconcile(NEEDS, adapter)
    engine.reconcile(other_scope, adapter)

    first = links.resolve_internal_id("X", NEEDS.child_relation_type, ROOT)
    second = links.resolve_internal_id("X", NEEDS.child_relation_type, other_parent)
    assert first is not None
    assert second is not None
    assert first != second


def test_link_failure_removes_the_new_internal_record() -> None:
    registry = InMemoryLinkRegistry()  # no parent link registered
    adapter = FakeRecordAdapter(records=[issue("A")])

    result = ReconciliationEngine(registry).reconcile(NEEDS, adapter)

    assert result.rejected == ["A"]
    assert result.created == []
    assert adapter.store == {}


def test_fetch_errors_propagate_without_deleting(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A")])
    engine = ReconciliationEngine(links)
    engine.reconcile(NEEDS, adapter)
    snapshot = list(links.links)

    adapter.fetch_error = RemoteApiError("remote down")
    with pytest.raises(RemoteApiError):
        engine.reconcile(NEEDS, adapter)

    assert links.links == snapshot
    assert len(adapter.store) == 1


def test_internal_record_deleted_out_of_band_is_recreated(links: InMemoryLinkRegistry) -> None:
    adapter = FakeRecordAdapter(records=[issue("A")])
    engine = ReconciliationEngine(links)
    engine.reconcile(NEEDS, adapter)
    old_id = links.resolve_internal_id("A", NEEDS.child_relation_type, ROOT)
    assert old_id is not None
    adapter.store.clear()

    result = engine.reconcile(NEEDS, adapter)

    new_id = links.resolve_internal_id("A", NEEDS.child_relation_type, ROOT)
    assert new_id is not None
    assert new_id != old_id
    assert result.created == [new_id]
    assert len(links.find_child_links(ROOT, NEEDS.child_relation_type)) == 1


def test_failing_scope_does_not_stop_its_siblings(links: InMemoryLinkRegistry) -> None:
    sink = RecordingReportSink()
    engine = ReconciliationEngine(links)
    good = FakeRecordAdapter(records=[issue("A")])
    bad = FakeRecordAdapter(fetch_error=RemoteApiError("quota exceeded"))
    iterations = ReconciliationScope(
        parent=ROOT, child_relation_type=RelationType.PORTFOLIO_ENTRY_ITERATION
    )
    defects = ReconciliationScope(
        parent=ROOT, child_relation_type=RelationType.PORTFOLIO_ENTRY_DEFECT
    )

    summary = reconcile_scopes(
        [
            ScopeJob(
                scope=iterations,
                root_id=1,
                label="iterations",
                run=lambda: engine.reconcile(iterations, good),
            ),
            ScopeJob(
                scope=NEEDS, root_id=1, label="needs", run=lambda: engine.reconcile(NEEDS, bad)
            ),
            ScopeJob(
                scope=defects,
                root_id=1,
                label="defects",
                run=lambda: engine.reconcile(defects, good),
            ),
        ],
        transaction_id="tx-1",
        report_sink=sink,
    )

    assert len(summary.results) == 2
    assert not summary.succeeded
    assert [entry.transaction_id for entry in sink.errors] == ["tx-1"]
    assert sink.errors[0].message == (
        "An error has occurred when loading the needs for the root record 1. "
        "The message returned by the remote system is: quota exceeded"
    )
