"""One connector per external system, driving reconciliation on a schedule."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from functools import partial
from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.config.connector import ConnectorSettings, parse_properties
from syncdock.domain.errors import ConnectivityError, NotRegisteredError, SyncError
from syncdock.domain.field_mapping import FieldMappingStore
from syncdock.domain.filters import (
    FilterRegistry,
    default_filter_registry,
    local_predicate,
    remote_parameters,
    resolve_rules,
)
from syncdock.domain.locks import KeyedLocks
from syncdock.domain.model import (
    COLLECTION_RELATIONS,
    MessageKind,
    ParentLink,
    ReconciliationScope,
    RelationType,
    ReportEntry,
    new_transaction_id,
)
from syncdock.domain.ports import RemoteQuery
from syncdock.domain.provisioning import AccountProvisioner
from syncdock.domain.reconciliation import (
    PassSummary,
    ReconciliationEngine,
    ScopeJob,
    reconcile_scopes,
)
from syncdock.domain.record_adapters import (
    IterationRecordAdapter,
    RequirementMappings,
    RequirementRecordAdapter,
)
from syncdock.domain.registration import RegistrationService

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

    from syncdock.domain.field_mapping import FieldMappingTable
    from syncdock.domain.filters import FilterRule
    from syncdock.domain.model import EventMessage, PortfolioEntry
    from syncdock.domain.ports import (
        RemoteAccountClient,
        RemoteClient,
        ReportSink,
        SyncRepositories,
        SyncUnitOfWork,
        SyncUnitOfWorkFactory,
    )
    from syncdock.domain.reconciliation import RecordAdapter, ReconciliationResult
    from syncdock.domain.scheduling import ScheduleHandle, Scheduler

log = getLogger(__name__)

MAPPING_KINDS = ("status", "priority", "severity")
ROOT_RELATION = RelationType.PORTFOLIO_ENTRY

type BatchLogWriter = Callable[[str, Sequence[str]], Path]


def main_block_id(connector_name: str) -> str:
    return f"{connector_name}.main"


def _never_local(_collection: str, _remote_key: str) -> bool:
    return False


@dataclass(frozen=True, slots=True, kw_only=True)
class VendorBinding:
    """What varies between external systems of the same kind."""

    vendor: str
    build_remote: Callable[[ConnectorSettings], RemoteClient]
    default_properties: Mapping[str, str] = field(default_factory=dict)
    collections: tuple[str, ...] = ("iterations", "needs", "defects")
    is_local_filter: Callable[[str, str], bool] = _never_local
    build_account_client: Callable[[ConnectorSettings], RemoteAccountClient] | None = None


@dataclass(slots=True)
class _Runtime:
    settings: ConnectorSettings
    remote: RemoteClient
    rules: dict[str, tuple[FilterRule, ...]]


@dataclass(slots=True)
class BatchReport:
    transaction_id: str
    lines: list[str] = field(default_factory=list[str])
    failures: int = 0
    log_path: Path | None = None


class Connector:
    def __init__(
        self,
        name: str,
        binding: VendorBinding,
        *,
        unit_of_work_factory: SyncUnitOfWorkFactory,
        scheduler: Scheduler,
        report_sink: ReportSink,
        filter_registry: FilterRegistry | None = None,
        env_overrides: Mapping[str, str] | None = None,
        batch_log_writer: BatchLogWriter | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.name = name
        self.binding = binding
        self.unit_of_work_factory = unit_of_work_factory
        self.scheduler = scheduler
        self.report_sink = report_sink
        self.filter_registry = filter_registry or default_filter_registry()
        self.env_overrides = dict(env_overrides or {})
        self.batch_log_writer = batch_log_writer
        self.locks = locks or KeyedLocks()
        self._state_lock = threading.Lock()
        self._mapping_lock = threading.Lock()
        self._runtime: _Runtime | None = None
        self._handle: ScheduleHandle | None = None

    @property
    def main_block_id(self) -> str:
        return main_block_id(self.name)

    def mapping_table_id(self, kind: str) -> str:
        return f"{self.name}.mapping.{kind}"

    def open_unit_of_work(self) -> SyncUnitOfWork:
        """A unit of work that only sees this connector's links and registrations."""

        return self.unit_of_work_factory(owner=self.name)

    @property
    def is_running(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    # lifecycle ---------------------------------------------------------------

    def start(self) -> ScheduleHandle:
        """Load configuration, check the remote side and schedule the recurring pass."""

        with self._state_lock:
            if self._handle is not None and not self._handle.cancelled:
                log.info("Connector %s is already running", self.name)
                return self._handle
            runtime = self._load_runtime()
            self.load_mapping_tables()
            settings = runtime.settings
            self.scheduler.validate(settings.load_start_time, settings.load_frequency)
            try:
                available = runtime.remote.ping()
            except ConnectivityError as exc:
                raise ConnectivityError(f"{self.name} server not available: stopping") from exc
            if not available:
                raise ConnectivityError(f"{self.name} server not available: stopping")
            self._runtime = runtime
            self._handle = self.scheduler.schedule_daily(
                settings.load_start_time,
                settings.load_frequency,
                self.run_scheduled_pass,
                name=self.name,
            )
        log.info("Connector %s started", self.name)
        return self._handle

    def stop(self) -> None:
        """Cancel the schedule; a pass already running is allowed to finish."""

        with self._state_lock:
            if self._handle is not None:
                self._handle.cancel()
            self._handle = None
        log.info("Connector %s stopped", self.name)

    # configuration -------------------------------------------------------------

    def load_settings(self) -> ConnectorSettings:
        with self.open_unit_of_work() as uow:
            content = uow.repositories.configuration.read(self.main_block_id)
        stored = parse_properties(content.decode("utf-8")) if content is not None else {}
        values = {**self.binding.default_properties, **stored, **self.env_overrides}
        return ConnectorSettings.from_properties(values)

    def load_mapping_tables(self) -> dict[str, FieldMappingTable]:
        with self.open_unit_of_work() as uow:
            store = FieldMappingStore(uow.repositories.configuration)
            return {kind: store.load(self.mapping_table_id(kind)) for kind in MAPPING_KINDS}

    def reload_mappings(self) -> dict[str, FieldMappingTable]:
        """Add newly offered remote keys to every mapping table."""

        discovered = self._current_runtime().remote.discover_mapping_keys()
        with self._mapping_lock, self.open_unit_of_work() as uow:
            store = FieldMappingStore(uow.repositories.configuration)
            tables = {
                kind: store.reconcile_keys(self.mapping_table_id(kind), discovered.get(kind, ()))
                for kind in MAPPING_KINDS
            }
            uow.commit()
        return tables

    def registration(self) -> RegistrationService:
        return RegistrationService(
            self.open_unit_of_work,
            self._current_runtime().remote,
            locks=self.locks,
        )

    # reconciliation ------------------------------------------------------------

    def registered_root_ids(self) -> list[int]:
        with self.open_unit_of_work() as uow:
            return uow.repositories.registrations.registered_root_ids()

    def run_scheduled_pass(self) -> PassSummary:
        """Scheduler callback: every registered root, failures reported, never raised."""

        transaction_id = new_transaction_id()
        summary = PassSummary(transaction_id=transaction_id)
        for root_id in self.registered_root_ids():
            try:
                summary.extend(self.run_root_pass(root_id, transaction_id=transaction_id))
            except Exception as exc:  # noqa: BLE001
                log.exception("Scheduled pass of %s failed for root %s", self.name, root_id)
                entry = self._error_entry(transaction_id, root_id, exc)
                self.report_sink.report(entry)
                summary.failures.append(entry)
        log.info(
            "Scheduled pass of %s finished: %s scopes reconciled, %s failed",
            self.name,
            len(summary.results),
            len(summary.failures),
        )
        return summary

    def run_root_pass(self, root_id: int, *, transaction_id: str | None = None) -> PassSummary:
        """Reconcile every enabled sub-collection of every project linked to ``root_id``."""

        transaction_id = transaction_id or new_transaction_id()
        runtime = self._current_runtime()
        with self.locks.hold(root_id):
            with self.open_unit_of_work() as uow:
                repositories = uow.repositories
                state = repositories.registrations.get(root_id)
                if state is None:
                    raise NotRegisteredError(root_id)
                root = repositories.portfolio_entries.get(root_id)
                if root is None:
                    raise SyncError(f"Root record {root_id} no longer exists")
                project_ids = repositories.links.find_links_for(root_id, ROOT_RELATION)
            mappings = self.load_mapping_tables()
            enabled = state.enabled_collections()
            jobs: list[ScopeJob] = []
            for project_id in project_ids:
                for collection in self.binding.collections:
                    if collection not in enabled:
                        continue
                    scope = _scope(root_id, project_id, collection)
                    jobs.append(
                        ScopeJob(
                            scope=scope,
                            root_id=root_id,
                            label=collection,
                            run=partial(
                                self._run_scope, runtime, root, scope, collection, mappings
                            ),
                        )
                    )
            summary = reconcile_scopes(
                jobs, transaction_id=transaction_id, report_sink=self.report_sink
            )
        log.info(
            "Root %s on %s: %s scopes reconciled, %s failed",
            root_id,
            self.name,
            len(summary.results),
            len(summary.failures),
        )
        return summary

    def resync_all(self, *, transaction_id: str | None = None) -> BatchReport:
        """Resynchronise every registered root, then every account, one line per item."""

        transaction_id = transaction_id or new_transaction_id()
        report = BatchReport(transaction_id=transaction_id)
        self.report_sink.report(
            ReportEntry(transaction_id=transaction_id, message="Resync started...")
        )
        self._resync_roots(report)
        if self.binding.build_account_client is not None:
            self._resync_accounts(report)
        if self.batch_log_writer is not None:
            report.log_path = self.batch_log_writer(self.name, report.lines)
        self.report_sink.report(
            ReportEntry(
                transaction_id=transaction_id,
                message=(
                    f"...Resync complete: {len(report.lines)} items, {report.failures} failed"
                ),
                is_error=report.failures > 0,
            )
        )
        return report

    # events ----------------------------------------------------------------------

    def handle(self, event: EventMessage) -> str | None:
        """Apply an object event; only provisioning connectors act on them."""

        if self.binding.build_account_client is None:
            log.debug("Connector %s ignores %s events", self.name, event.kind)
            return None
        if event.internal_id is None:
            raise ValueError(f"{event.kind} event without an internal id")
        if event.relation_type not in {None, RelationType.USER}:
            log.debug("Connector %s ignores %s objects", self.name, event.relation_type)
            return None
        return self._provision(event.kind, event.internal_id)

    # internals -------------------------------------------------------------------

    def _run_scope(
        self,
        runtime: _Runtime,
        root: PortfolioEntry,
        scope: ReconciliationScope,
        collection: str,
        mappings: Mapping[str, FieldMappingTable],
    ) -> ReconciliationResult:
        with self.open_unit_of_work() as uow:
            repositories = uow.repositories
            adapter = self._build_adapter(runtime, repositories, root, scope, collection, mappings)
            result = ReconciliationEngine(repositories.links).reconcile(scope, adapter)
            uow.commit()
        return result

    def _build_adapter(
        self,
        runtime: _Runtime,
        repositories: SyncRepositories,
        root: PortfolioEntry,
        scope: ReconciliationScope,
        collection: str,
        mappings: Mapping[str, FieldMappingTable],
    ) -> RecordAdapter:
        rules = runtime.rules.get(collection, ())
        query = RemoteQuery(
            collection=collection,
            root=root,
            parameters=remote_parameters(rules, root),
            trackers=runtime.settings.collection(collection).trackers,
        )
        predicate = local_predicate(rules, root)
        if collection == "iterations":
            return IterationRecordAdapter(
                remote=runtime.remote,
                query=query,
                repositories=repositories,
                source=self.name,
                predicate=predicate,
            )
        return RequirementRecordAdapter(
            remote=runtime.remote,
            query=query,
            repositories=repositories,
            mappings=RequirementMappings(
                status=mappings["status"],
                priority=mappings["priority"],
                severity=mappings["severity"],
            ),
            parent=scope.parent,
            is_defect=collection == "defects",
            predicate=predicate,
        )

    def _provision(self, kind: MessageKind, user_id: int) -> str | None:
        build_account_client = self.binding.build_account_client
        if build_account_client is None:
            return None
        client = build_account_client(self._current_runtime().settings)
        with self.locks.hold((RelationType.USER, user_id)), self.open_unit_of_work() as uow:
            external_id = AccountProvisioner(client, uow.repositories).handle(kind, user_id)
            uow.commit()
        return external_id

    def _resync_roots(self, report: BatchReport) -> None:
        for root_id in self.registered_root_ids():
            try:
                summary = self.run_root_pass(root_id, transaction_id=report.transaction_id)
            except Exception as exc:  # noqa: BLE001
                log.exception("Resync of root %s failed", root_id)
                report.lines.append(f">>Error with root record {root_id}, exception is: {exc}")
                report.failures += 1
                continue
            if summary.failures:
                causes = "; ".join(entry.message for entry in summary.failures)
                report.lines.append(f">>Error with root record {root_id}, exception is: {causes}")
                report.failures += 1
            else:
                report.lines.append(f"Root record {root_id} checked")

    def _resync_accounts(self, report: BatchReport) -> None:
        with self.open_unit_of_work() as uow:
            accounts = uow.repositories.user_accounts.list_all()
        for account in accounts:
            if account.id is None:
                continue
            try:
                self._provision(MessageKind.RESYNC, account.id)
            except Exception as exc:  # noqa: BLE001
                log.exception("Resync of account %s failed", account.uid)
                report.lines.append(f">>Error with account {account.uid}, exception is: {exc}")
                report.failures += 1
                continue
            report.lines.append(f"Account {account.uid} checked")

    def _current_runtime(self) -> _Runtime:
        runtime = self._runtime
        if runtime is None:
            runtime = self._load_runtime()
            self._runtime = runtime
        return runtime

    def _load_runtime(self) -> _Runtime:
        settings = self.load_settings()
        rules = {
            collection: resolve_rules(
                settings.collection(collection).filters,
                self.filter_registry,
                is_local=partial(self.binding.is_local_filter, collection),
            )
            for collection in self.binding.collections
        }
        return _Runtime(settings=settings, remote=self.binding.build_remote(settings), rules=rules)

    def _error_entry(self, transaction_id: str, root_id: int, exc: Exception) -> ReportEntry:
        return ReportEntry(
            transaction_id=transaction_id,
            root_id=root_id,
            is_error=True,
            error=exc,
            message=f"Failure of the {self.name} connector for root record {root_id}: {exc}",
        )


def _scope(root_id: int, project_id: str, collection: str) -> ReconciliationScope:
    return ReconciliationScope(
        parent=ParentLink(internal_id=root_id, external_id=project_id, relation_type=ROOT_RELATION),
        child_relation_type=COLLECTION_RELATIONS[collection],
    )
