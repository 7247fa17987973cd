from __future__ import annotations

from pathlib import Path

import pytest

from syncdock.config import connector_env_overrides, get_database_config, get_storage_config


def test_env_overrides_map_variables_to_property_keys() -> None:
    environ = {
        "SYNCDOCK_JIRA_API_KEY": " secret ",
        "SYNCDOCK_JIRA_HOST_URL": "https://jira.example.org",
        "SYNCDOCK_JIRA_LOAD_START_TIME": "",
        "SYNCDOCK_REDMINE_API_KEY": "other",
        "UNRELATED": "x",
    }

    assert connector_env_overrides("jira", environ=environ) == {
        "api.key": "secret",
        "host.url": "https://jira.example.org",
    }


def test_env_overrides_sanitise_connector_names() -> None:
    environ = {"SYNCDOCK_REDMINE_OPS_API_KEY": "k"}

    assert connector_env_overrides("redmine-ops", environ=environ) == {"api.key": "k"}


def test_storage_config_uses_data_dir_env(isolated_data_dir: Path) -> None:
    storage = get_storage_config()

    assert storage.root == isolated_data_dir.resolve()
    expected = isolated_data_dir.resolve() / "jira_ops_resync.log"
    assert storage.batch_log_path("Jira / Ops") == expected
    assert isolated_data_dir.is_dir()


def test_database_config_prefers_env_uri(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite+pysqlite:///:memory:")
    assert get_database_config().uri == "sqlite+pysqlite:///:memory:"

    monkeypatch.delenv("DATABASE_URI")
    assert get_database_config().uri.endswith("syncdock.db")
