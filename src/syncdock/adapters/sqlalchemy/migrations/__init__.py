"""Packaged Alembic revisions for the syncdock schema.

There is no ``alembic.ini``; the script location is this package, so an
installed wheel can migrate its own database.
"""

from __future__ import annotations

from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config

from syncdock.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = getLogger(__name__)

SCRIPT_LOCATION = Path(__file__).resolve().parent


def alembic_config(database_uri: str | None = None) -> Config:
    config = Config()
    config.set_main_option("script_location", str(SCRIPT_LOCATION))
    if database_uri is not None:
        config.set_main_option("sqlalchemy.url", database_uri)
    return config


def upgrade_head(*, engine: Engine | None = None, database_uri: str | None = None) -> None:
    """Migrate ``engine`` (or the configured database) to the newest revision."""

    if engine is None:
        command.upgrade(alembic_config(database_uri or get_database_config().uri), "head")
        return
    config = alembic_config()
    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")
    log.debug("Schema of %s is at head", engine.url.render_as_string(hide_password=True))
