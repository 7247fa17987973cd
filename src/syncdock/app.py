"""Application wiring: connectors, dispatchers and configuration blocks."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.adapters.http_resilience import (
    ResilienceConfig,
    http_get_resilient,
    run_remote_call,
)
from syncdock.adapters.jira import JIRA_BINDING
from syncdock.adapters.redmine import REDMINE_BINDING
from syncdock.adapters.reporting import FileBatchLogWriter, LoggingReportSink
from syncdock.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemySyncUnitOfWork,
    is_started,
    startup,
)
from syncdock.config import (
    ConfigurationError,
    connector_env_overrides,
    get_storage_config,
    parse_properties,
    render_properties,
)
from syncdock.domain.connector import Connector, VendorBinding, main_block_id
from syncdock.domain.dispatch import EventDispatcher
from syncdock.domain.hooks import HookContext
from syncdock.domain.model import ReportEntry
from syncdock.domain.scheduling import Scheduler

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from syncdock.domain.hooks import Hook
    from syncdock.domain.model import EventMessage
    from syncdock.domain.ports import ReportSink, SyncUnitOfWorkFactory

log = getLogger(__name__)

type UnitOfWorkFactory = SyncUnitOfWorkFactory

VENDOR_BINDINGS: dict[str, VendorBinding] = {
    JIRA_BINDING.vendor: JIRA_BINDING,
    REDMINE_BINDING.vendor: REDMINE_BINDING,
}
SECRET_KEYS = frozenset({"api.key"})
HOOK_HTTP_TIMEOUT_SECONDS = 10.0


def resolve_binding(connector_name: str, vendor: str | None = None) -> VendorBinding:
    """Pick the vendor binding, by default from the name prefix (``redmine-prod``)."""

    key = (vendor or connector_name.split("-", 1)[0]).lower()
    binding = VENDOR_BINDINGS.get(key)
    if binding is None:
        known = ", ".join(sorted(VENDOR_BINDINGS))
        raise ConfigurationError(
            f"Unknown vendor {key!r} for connector {connector_name!r}; use {known}"
        )
    return binding


@dataclass(slots=True)
class Application:
    connector: Connector
    dispatcher: EventDispatcher
    report_sink: ReportSink


def build_application(
    connector_name: str,
    *,
    vendor: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    scheduler: Scheduler | None = None,
    report_sink: ReportSink | None = None,
    hooks: Sequence[Hook] = (),
    environ: Mapping[str, str] | None = None,
) -> Application:
    """Wire one connector with its dispatcher against the configured adapters."""

    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = SqlAlchemySyncUnitOfWork
    effective_sink = report_sink or LoggingReportSink()
    connector = Connector(
        connector_name,
        resolve_binding(connector_name, vendor),
        unit_of_work_factory=unit_of_work_factory,
        scheduler=scheduler or Scheduler(),
        report_sink=effective_sink,
        env_overrides=connector_env_overrides(connector_name, environ=environ),
        batch_log_writer=FileBatchLogWriter(get_storage_config()),
    )
    dispatcher = EventDispatcher(
        connector,
        report_sink=effective_sink,
        hooks=hooks,
        hook_context=hook_context_factory(connector, effective_sink),
    )
    return Application(connector=connector, dispatcher=dispatcher, report_sink=effective_sink)


def hook_context_factory(
    connector: Connector,
    report_sink: ReportSink,
) -> Callable[[EventMessage], HookContext]:
    def find_external_ids(internal_id: int, relation_type: str) -> list[str]:
        with connector.open_unit_of_work() as uow:
            return uow.repositories.links.find_links_for(internal_id, relation_type)

    def build(event: EventMessage) -> HookContext:
        def notify(message: str) -> None:
            report_sink.report(
                ReportEntry(
                    transaction_id=event.transaction_id,
                    root_id=event.internal_id,
                    message=message,
                )
            )

        return HookContext(
            connector=connector.name,
            find_external_ids=find_external_ids,
            notify=notify,
            http_get=_hook_http_get,
            log=getLogger(f"syncdock.hooks.{connector.name}"),
        )

    return build


def _hook_http_get(url: str) -> str:
    config = ResilienceConfig(name="hooks", timeout_seconds=HOOK_HTTP_TIMEOUT_SECONDS)
    response = run_remote_call(
        f"Hook GET {url}",
        lambda: http_get_resilient(config, url),
        timeout_seconds=config.timeout_seconds,
    )
    response.raise_for_status()
    return response.text


def run_until_stopped(application: Application, stop: threading.Event) -> None:
    """Start the connector and keep it scheduled until ``stop`` is set."""

    application.connector.start()
    try:
        stop.wait()
    finally:
        application.connector.stop()


# configuration blocks ----------------------------------------------------------


def read_connector_properties(
    connector_name: str,
    *,
    unit_of_work_factory: UnitOfWorkFactory,
) -> dict[str, str]:
    with unit_of_work_factory() as uow:
        content = uow.repositories.configuration.read(main_block_id(connector_name))
    return parse_properties(content.decode("utf-8")) if content is not None else {}


def update_connector_properties(
    connector_name: str,
    changes: Mapping[str, str],
    *,
    unit_of_work_factory: UnitOfWorkFactory,
) -> dict[str, str]:
    """Merge ``changes`` into the stored main block; an empty value removes the key."""

    with unit_of_work_factory() as uow:
        store = uow.repositories.configuration
        block_id = main_block_id(connector_name)
        content = store.read(block_id)
        values = parse_properties(content.decode("utf-8")) if content is not None else {}
        for key, value in changes.items():
            if value:
                values[key] = value
            else:
                values.pop(key, None)
        store.write(block_id, render_properties(values).encode("utf-8"))
        uow.commit()
    log.info("Updated %s configuration keys: %s", connector_name, ", ".join(sorted(changes)))
    return values


def masked(values: Mapping[str, str]) -> dict[str, str]:
    return {
        key: ("****" if key in SECRET_KEYS and value else value) for key, value in values.items()
    }
