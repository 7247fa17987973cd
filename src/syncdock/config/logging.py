"""Logging setup shared by the command line and long-running connectors."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once.

    Connector threads log through module loggers, so the thread name is part of
    the format. Pass ``force=True`` to reconfigure during tests.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] (%(threadName)s) %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
