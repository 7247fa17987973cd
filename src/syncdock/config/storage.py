"""Locations of the files syncdock keeps on disk."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "syncdock"
DATA_DIR_ENV: Final[str] = "SYNCDOCK_DATA_DIR"
DATABASE_URI_ENV: Final[str] = "DATABASE_URI"
DATABASE_FILENAME: Final[str] = "syncdock.db"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"
BATCH_LOG_SUFFIX: Final[str] = "_resync.log"

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9]+")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """The data directory and the files placed directly inside it."""

    data_dir: Path

    @property
    def root(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def file(self, name: str, *, ensure: bool = True) -> Path:
        if ensure:
            self.root.mkdir(parents=True, exist_ok=True)
        return self.root / name

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.file(DATABASE_FILENAME)}"

    def http_cache_path(self) -> Path:
        return self.file(HTTP_CACHE_FILENAME)

    def batch_log_path(self, connector_name: str) -> Path:
        stem = _UNSAFE_FILENAME.sub("_", connector_name).strip("_").lower() or "connector"
        return self.file(f"{stem}{BATCH_LOG_SUFFIX}")


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _default_data_dir() -> Path:
    xdg_home = os.getenv("XDG_DATA_HOME")
    base = Path(xdg_home) if xdg_home else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv(DATA_DIR_ENV)
    return StorageConfig(data_dir=Path(env_dir) if env_dir else _default_data_dir())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """``DATABASE_URI`` when set, else the SQLite file in the data directory."""

    env_uri = os.getenv(DATABASE_URI_ENV)
    if env_uri:
        return DatabaseConfig(uri=env_uri)
    return DatabaseConfig(uri=(storage or get_storage_config()).database_uri())
