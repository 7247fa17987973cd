from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest

from syncdock.domain.model import CustomAction, RegistrationState, RemoteProject
from syncdock.ui import cli as cli_module

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from syncdock.adapters.sqlalchemy import SqlAlchemySyncUnitOfWork


@dataclass
class StubRegistration:
    registered: bool = True
    calls: list[tuple[str, object]] = field(default_factory=list[tuple[str, object]])

    def is_registered(self, root_id: int) -> bool:
        del root_id
        return self.registered

    def create_project(self, root_id: int) -> str:
        self.calls.append(("create_project", root_id))
        return "P-NEW"

    def update_flags(self, root_id: int, **flags: bool) -> RegistrationState:
        self.calls.append(("update_flags", flags))
        return RegistrationState(root_id=root_id, **flags)

    def link_project(self, root_id: int, project_id: str) -> RegistrationState:
        self.calls.append(("link_project", (root_id, project_id)))
        return RegistrationState(root_id=root_id)

    def search_projects(self, term: str) -> list[RemoteProject]:
        self.calls.append(("search_projects", term))
        return [RemoteProject(external_id="10", name="Apollo", key="AP")]


@dataclass
class StubConnector:
    registration_service: StubRegistration

    def registration(self) -> StubRegistration:
        return self.registration_service


@dataclass
class StubDispatcher:
    triggers: list[tuple[str, int | None]] = field(default_factory=list[tuple[str, int | None]])

    def trigger(self, action_id: str, internal_id: int | None = None) -> object:
        self.triggers.append((action_id, internal_id))
        return None


@dataclass
class StubApplication:
    connector: StubConnector
    dispatcher: StubDispatcher = field(default_factory=StubDispatcher)
    captured: dict[str, object] = field(default_factory=dict[str, object])


@pytest.fixture
def application(monkeypatch: pytest.MonkeyPatch) -> StubApplication:
    stub = StubApplication(StubConnector(StubRegistration()))

    def fake_build(connector_name: str, *, vendor: str | None = None) -> StubApplication:
        stub.captured.update(connector=connector_name, vendor=vendor)
        return stub

    monkeypatch.setattr(cli_module, "build_application", fake_build)
    return stub


def test_sync_triggers_a_load(application: StubApplication) -> None:
    cli_module.main(["sync", "redmine-prod", "42"])

    assert application.dispatcher.triggers == [(CustomAction.TRIGGER_LOAD, 42)]
    assert application.captured == {"connector": "redmine-prod", "vendor": None}


def test_batch_commands_use_custom_actions(application: StubApplication) -> None:
    cli_module.main(["reload-mappings", "jira"])
    cli_module.main(["resync-all", "tracker", "--vendor", "redmine"])

    assert application.dispatcher.triggers == [
        (CustomAction.RELOAD_MAPPINGS, None),
        (CustomAction.RESYNC_ALL, None),
    ]


def test_register_creates_the_project_and_sets_flags(application: StubApplication) -> None:
    cli_module.main(["register", "jira", "7", "--create-project", "--needs", "--no-defects"])

    assert application.connector.registration_service.calls == [
        ("create_project", 7),
        ("update_flags", {"needs": True, "defects": False}),
    ]


def test_register_without_project_fails(application: StubApplication) -> None:
    application.connector.registration_service.registered = False

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["register", "jira", "7", "--needs"])

    assert excinfo.value.code == 1
    assert application.connector.registration_service.calls == []


def test_projects_prints_matches(
    application: StubApplication, capsys: pytest.CaptureFixture[str]
) -> None:
    cli_module.main(["projects", "jira", "apo"])

    assert capsys.readouterr().out == "10\tAP\tApollo\n"
    assert application.connector.registration_service.calls == [("search_projects", "apo")]


def test_config_set_rejects_malformed_assignments() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["config", "set", "jira", "host.url"])

    assert excinfo.value.code == 2


def test_config_set_and_show(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork],
    capsys: pytest.CaptureFixture[str],
) -> None:
    del sqlite_unit_of_work
    cli_module.main(["config", "set", "jira", "host.url=https://jira", "api.key=secret"])
    cli_module.main(["config", "show", "jira"])

    assert capsys.readouterr().out == "host.url=https://jira\napi.key=****\n"


def test_unknown_subcommand_exits_with_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["explode"])

    assert excinfo.value.code == 2


def test_load_accounts_reads_the_csv_feed(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork], tmp_path: Path
) -> None:
    path = tmp_path / "staff.csv"
    path.write_text(
        "uid;first_name;last_name;mail;active\njdoe;Jane;Doe;jane@example.org;no\n",
        encoding="utf-8",
    )

    cli_module.main(["load-accounts", str(path), "--delimiter", ";"])

    with sqlite_unit_of_work() as uow:
        [account] = uow.repositories.user_accounts.list_all()
    assert (account.uid, account.is_active) == ("jdoe", False)


def test_load_accounts_fails_on_a_missing_file(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork], tmp_path: Path
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["load-accounts", str(tmp_path / "absent.csv")])

    assert excinfo.value.code == 1
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.user_accounts.list_all() == []
