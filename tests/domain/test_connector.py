from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from syncdock.config.errors import MissingConfigurationError
from syncdock.domain.connector import Connector, VendorBinding
from syncdock.domain.errors import ConnectivityError, NotRegisteredError, RemoteApiError
from syncdock.domain.model import (
    EventMessage,
    MessageKind,
    RegistrationState,
    RelationType,
    Requirement,
)
from syncdock.domain.scheduling import Scheduler
from tests.helpers.sync import (
    FakeAccountClient,
    FakeRemoteClient,
    RecordingReportSink,
    add_portfolio_entry,
    add_user_account,
    issue,
    store_properties,
    version,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from syncdock.adapters.sqlalchemy import SqlAlchemySyncUnitOfWork
    from syncdock.domain.model import ExternalRecord, ReconciliationScope
    from syncdock.domain.ports import RemoteQuery
    from syncdock.domain.reconciliation import PassSummary

type UowFactory = Callable[..., SqlAlchemySyncUnitOfWork]

CONNECTION = {"host.url": "https://tracker.example.org", "api.key": "secret"}
DEFAULTS = {"load.start_time": "04h00", "load.frequency": "1440"}


def make_connector(
    factory: UowFactory,
    remote: FakeRemoteClient,
    *,
    sink: RecordingReportSink | None = None,
    accounts: FakeAccountClient | None = None,
    overrides: dict[str, str] | None = None,
    batch_log_writer: Callable[[str, Sequence[str]], Path] | None = None,
    name: str = "fake",
) -> Connector:
    binding = VendorBinding(
        vendor="fake",
        build_remote=lambda _settings: remote,
        default_properties=DEFAULTS,
        is_local_filter=lambda _collection, key: key == "category",
        build_account_client=(lambda _settings: accounts) if accounts is not None else None,
    )
    return Connector(
        name,
        binding,
        unit_of_work_factory=factory,
        scheduler=Scheduler(now=lambda: datetime(2024, 5, 17, 12, 0)),
        report_sink=sink or RecordingReportSink(),
        env_overrides={**CONNECTION, **(overrides or {})},
        batch_log_writer=batch_log_writer,
    )


def register(connector: Connector, root_id: int, project_id: str = "P-1", **flags: bool) -> None:
    registration = connector.registration()
    registration.link_project(root_id, project_id)
    registration.update_flags(root_id, **flags)


def requirements_of(factory: UowFactory, root_id: int) -> list[Requirement]:
    with factory() as uow:
        return uow.repositories.requirements.list_for_portfolio_entry(root_id)


def test_start_fails_when_remote_is_unavailable(sqlite_unit_of_work: UowFactory) -> None:
    connector = make_connector(sqlite_unit_of_work, FakeRemoteClient(available=False))

    with pytest.raises(ConnectivityError, match="fake server not available: stopping"):
        connector.start()
    assert not connector.is_running


def test_start_fails_without_connection_settings(sqlite_unit_of_work: UowFactory) -> None:
    connector = make_connector(sqlite_unit_of_work, FakeRemoteClient())
    del connector.env_overrides["host.url"]

    with pytest.raises(MissingConfigurationError, match="host.url"):
        connector.start()


def test_start_schedules_and_stop_cancels(sqlite_unit_of_work: UowFactory) -> None:
    connector = make_connector(sqlite_unit_of_work, FakeRemoteClient())

    handle = connector.start()

    assert connector.is_running
    assert handle.initial_delay == timedelta(hours=16)
    assert handle.interval == timedelta(days=1)
    assert connector.start() is handle
    connector.stop()
    handle.join(5)
    assert not connector.is_running
    assert handle.cancelled


def test_stored_settings_are_overridden_by_environment(sqlite_unit_of_work: UowFactory) -> None:
    store_properties(
        sqlite_unit_of_work,
        "fake.main",
        "host.url=https://stored.example.org\napi.key=stored\nload.frequency=60\n",
    )
    connector = make_connector(sqlite_unit_of_work, FakeRemoteClient())

    settings = connector.load_settings()

    assert settings.host_url == "https://tracker.example.org"
    assert settings.load_frequency == timedelta(hours=1)
    assert settings.load_start_time == "04h00"


def test_root_pass_reconciles_enabled_collections(sqlite_unit_of_work: UowFactory) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    store_properties(sqlite_unit_of_work, "fake.mapping.status", "OPEN=3\nCLOSED=\n")
    remote = FakeRemoteClient(
        {
            ("iterations", "P-1"): [version("V-1", name="Sprint 1")],
            ("needs", "P-1"): [
                issue("I-1", name="Login", status="Open", iteration_external_id="V-1"),
                issue("I-2", name="Crash", is_defect=True),
            ],
            ("defects", "P-1"): [issue("I-2", name="Crash", is_defect=True)],
        }
    )
    connector = make_connector(sqlite_unit_of_work, remote)
    register(connector, root_id, needs=True, iterations=True)

    summary = connector.run_root_pass(root_id)

    assert summary.succeeded
    assert len(summary.results) == 2
    [requirement] = requirements_of(sqlite_unit_of_work, root_id)
    assert requirement.name == "Login"
    assert requirement.status_id == 3
    assert not requirement.is_defect
    with sqlite_unit_of_work("fake") as uow:
        iteration_id = uow.repositories.links.resolve_internal_id(
            "V-1",
            RelationType.PORTFOLIO_ENTRY_ITERATION,
            summary.results[0].scope.parent,
        )
    assert iteration_id is not None
    assert requirement.iteration_id == iteration_id


def test_root_pass_is_idempotent_and_follows_remote_deletes(
    sqlite_unit_of_work: UowFactory,
) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    remote = FakeRemoteClient({("needs", "P-1"): [issue("I-1"), issue("I-2")]})
    connector = make_connector(sqlite_unit_of_work, remote)
    register(connector, root_id, needs=True)

    connector.run_root_pass(root_id)
    first_ids = sorted(item.id for item in requirements_of(sqlite_unit_of_work, root_id))
    connector.run_root_pass(root_id)
    second_ids = sorted(item.id for item in requirements_of(sqlite_unit_of_work, root_id))
    remote.records[("needs", "P-1")] = [issue("I-2", name="Renamed")]
    connector.run_root_pass(root_id)

    assert first_ids == second_ids
    [remaining] = requirements_of(sqlite_unit_of_work, root_id)
    assert remaining.id == first_ids[1]
    assert remaining.name == "Renamed"


def test_root_pass_replaces_removed_issue_and_keeps_the_rest(
    sqlite_unit_of_work: UowFactory,
) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work, name="P1")
    store_properties(sqlite_unit_of_work, "fake.mapping.status", "OPEN=10\n")
    remote = FakeRemoteClient(
        {("needs", "EXT-7"): [issue("I1", status="Open"), issue("I2", status="Closed")]}
    )
    connector = make_connector(sqlite_unit_of_work, remote)
    register(connector, root_id, "EXT-7", needs=True)

    first = connector.run_root_pass(root_id)
    by_ref = {
        item.external_ref_id: item for item in requirements_of(sqlite_unit_of_work, root_id)
    }
    remote.records[("needs", "EXT-7")] = [issue("I2", status="Closed"), issue("I3")]
    second = connector.run_root_pass(root_id)

    assert len(first.results[0].created) == 2
    assert by_ref["I1"].status_id == 10
    assert by_ref["I2"].status_id is None
    [result] = second.results
    assert result.deleted == [by_ref["I1"].id]
    assert len(result.created) == 1
    remaining = {
        item.external_ref_id: item.id for item in requirements_of(sqlite_unit_of_work, root_id)
    }
    assert remaining == {"I2": by_ref["I2"].id, "I3": result.created[0]}


def test_root_pass_isolates_failing_scopes(sqlite_unit_of_work: UowFactory) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    remote = FakeRemoteClient({("defects", "P-1"): [issue("D-1", is_defect=True)]})
    remote.failures[("needs", "P-1")] = RemoteApiError("Project archived")
    sink = RecordingReportSink()
    connector = make_connector(sqlite_unit_of_work, remote, sink=sink)
    register(connector, root_id, needs=True, defects=True)

    summary = connector.run_root_pass(root_id, transaction_id="tx-9")

    assert len(summary.results) == 1
    assert [entry.transaction_id for entry in sink.errors] == ["tx-9"]
    assert "Project archived" in sink.errors[0].message
    assert [item.external_ref_id for item in requirements_of(sqlite_unit_of_work, root_id)] == [
        "D-1"
    ]


def test_root_pass_sends_remote_filters_and_applies_local_ones(
    sqlite_unit_of_work: UowFactory,
) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work, governance_id="GOV-1", ref_id="R-1")
    remote = FakeRemoteClient(
        {
            ("needs", "P-1"): [
                issue("I-1", attributes={"category": "gov-1"}),
                issue("I-2", attributes={"category": "GOV-2"}),
            ]
        }
    )
    connector = make_connector(
        sqlite_unit_of_work,
        remote,
        overrides={"needs.filter": "category=governance_id;cf_5=ref_id", "needs.trackers": "Bug"},
    )
    register(connector, root_id, needs=True)

    connector.run_root_pass(root_id)

    [query] = remote.queries
    assert query.parameters == {"cf_5": "R-1"}
    assert query.trackers == ("Bug",)
    assert [item.external_ref_id for item in requirements_of(sqlite_unit_of_work, root_id)] == [
        "I-1"
    ]


def test_root_pass_requires_registration(sqlite_unit_of_work: UowFactory) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    connector = make_connector(sqlite_unit_of_work, FakeRemoteClient())

    with pytest.raises(NotRegisteredError):
        connector.run_root_pass(root_id)


def test_scheduled_pass_reports_failures_and_continues(sqlite_unit_of_work: UowFactory) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    remote = FakeRemoteClient({("needs", "P-1"): [issue("I-1")]})
    sink = RecordingReportSink()
    connector = make_connector(sqlite_unit_of_work, remote, sink=sink)
    register(connector, root_id, needs=True)
    with sqlite_unit_of_work("fake") as uow:
        uow.repositories.registrations.save(RegistrationState(root_id=999, needs=True))
        uow.commit()

    summary = connector.run_scheduled_pass()

    assert len(summary.results) == 1
    assert [entry.root_id for entry in summary.failures] == [999]
    assert sink.errors[0].message == (
        "Failure of the fake connector for root record 999: Root record 999 no longer exists"
    )
    assert len(requirements_of(sqlite_unit_of_work, root_id)) == 1


def test_reload_mappings_adds_discovered_keys(sqlite_unit_of_work: UowFactory) -> None:
    store_properties(sqlite_unit_of_work, "fake.mapping.status", "OPEN=3\n")
    remote = FakeRemoteClient(mapping_keys={"status": ["Open", "In Review"], "priority": ["High"]})
    connector = make_connector(sqlite_unit_of_work, remote)

    tables = connector.reload_mappings()

    assert tables["status"].entries == {"OPEN": 3, "IN_REVIEW": None}
    assert tables["priority"].entries == {"HIGH": None}
    assert len(tables["severity"]) == 0
    assert connector.load_mapping_tables()["status"].entries == tables["status"].entries


def test_resync_all_writes_one_line_per_item(
    sqlite_unit_of_work: UowFactory, tmp_path: Path
) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    add_user_account(sqlite_unit_of_work)
    written: list[Sequence[str]] = []

    def writer(name: str, lines: Sequence[str]) -> Path:
        written.append(list(lines))
        return tmp_path / f"{name}.log"

    accounts = FakeAccountClient()
    sink = RecordingReportSink()
    connector = make_connector(
        sqlite_unit_of_work,
        FakeRemoteClient(),
        sink=sink,
        accounts=accounts,
        batch_log_writer=writer,
    )
    register(connector, root_id, needs=True)
    with sqlite_unit_of_work("fake") as uow:
        uow.repositories.registrations.save(RegistrationState(root_id=999))
        uow.commit()

    report = connector.resync_all(transaction_id="tx-r")

    assert report.lines == [
        f"Root record {root_id} checked",
        ">>Error with root record 999, exception is: Root record 999 no longer exists",
        "Account jdoe checked",
    ]
    assert report.failures == 1
    assert report.log_path == tmp_path / "fake.log"
    assert written == [report.lines]
    assert [call[0] for call in accounts.calls] == ["create"]
    messages = [entry.message for entry in sink.entries if entry.transaction_id == "tx-r"]
    assert messages[0] == "Resync started..."
    assert messages[-1] == "...Resync complete: 3 items, 1 failed"


def test_handle_ignores_events_without_provisioning(sqlite_unit_of_work: UowFactory) -> None:
    connector = make_connector(sqlite_unit_of_work, FakeRemoteClient())

    assert connector.handle(EventMessage(kind=MessageKind.OBJECT_CREATED, internal_id=1)) is None


def test_handle_provisions_user_accounts(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work)
    accounts = FakeAccountClient()
    connector = make_connector(sqlite_unit_of_work, FakeRemoteClient(), accounts=accounts)

    external_id = connector.handle(
        EventMessage(
            kind=MessageKind.OBJECT_CREATED, internal_id=user_id, relation_type=RelationType.USER
        )
    )
    ignored = connector.handle(
        EventMessage(
            kind=MessageKind.OBJECT_UPDATED,
            internal_id=user_id,
            relation_type=RelationType.PORTFOLIO_ENTRY,
        )
    )

    assert external_id == "1"
    assert ignored is None
    assert accounts.calls == [("create", "1")]
    with pytest.raises(ValueError, match="internal id"):
        connector.handle(EventMessage(kind=MessageKind.OBJECT_DELETED))


def test_connectors_sharing_a_database_keep_links_and_registrations_apart(
    sqlite_unit_of_work: UowFactory,
) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    jira_remote = FakeRemoteClient({("needs", "P-1"): [issue("J-1")]})
    redmine_remote = FakeRemoteClient({("needs", "P-1"): []})
    jira = make_connector(sqlite_unit_of_work, jira_remote, name="jira")
    redmine = make_connector(sqlite_unit_of_work, redmine_remote, name="redmine")
    register(jira, root_id, needs=True)
    jira.run_root_pass(root_id)

    assert redmine.registered_root_ids() == []
    with pytest.raises(NotRegisteredError):
        redmine.run_root_pass(root_id)

    register(redmine, root_id, needs=True)
    summary = redmine.run_root_pass(root_id)

    [result] = summary.results
    assert result.deleted == []
    assert [item.external_ref_id for item in requirements_of(sqlite_unit_of_work, root_id)] == [
        "J-1"
    ]
    assert jira.registered_root_ids() == redmine.registered_root_ids() == [root_id]
    with sqlite_unit_of_work("redmine") as uow:
        assert uow.repositories.links.find_child_links(
            result.scope.parent, RelationType.PORTFOLIO_ENTRY_NEED
        ) == []


class BlockingRemoteClient(FakeRemoteClient):
    """Parks the first fetch until ``release`` is set."""

    def __init__(self, records: dict[tuple[str, str], Sequence[ExternalRecord]]) -> None:
        super().__init__(records)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch(self, scope: ReconciliationScope, query: RemoteQuery) -> list[ExternalRecord]:
        if not self.entered.is_set():
            self.entered.set()
            self.release.wait(5)
        return super().fetch(scope, query)


def test_scheduled_and_manual_passes_on_one_root_do_not_overlap(
    sqlite_unit_of_work: UowFactory,
) -> None:
    root_id = add_portfolio_entry(sqlite_unit_of_work)
    remote = BlockingRemoteClient({("needs", "P-1"): [issue("I-1")]})
    connector = make_connector(sqlite_unit_of_work, remote)
    register(connector, root_id, needs=True)
    scheduled = threading.Thread(target=connector.run_scheduled_pass)
    manual: list[PassSummary] = []
    worker = threading.Thread(target=lambda: manual.append(connector.run_root_pass(root_id)))

    scheduled.start()
    assert remote.entered.wait(5)
    worker.start()
    worker.join(0.2)

    assert worker.is_alive()
    assert remote.queries == []
    remote.release.set()
    scheduled.join(5)
    worker.join(5)

    assert len(remote.queries) == 2
    [summary] = manual
    [result] = summary.results
    assert result.created == []
    assert len(result.updated) == 1
    assert [item.external_ref_id for item in requirements_of(sqlite_unit_of_work, root_id)] == [
        "I-1"
    ]
