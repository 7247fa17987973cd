"""Environment variable loaders for configuration."""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_PREFIX = "SYNCDOCK_"


def connector_env_overrides(
    connector_name: str,
    *,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Collect ``SYNCDOCK_<CONNECTOR>_<KEY>`` variables as settings overrides.

    ``SYNCDOCK_JIRA_API_KEY=secret`` becomes ``{"api.key": "secret"}`` so that
    credentials can stay out of the stored configuration blocks.
    """

    source = os.environ if environ is None else environ
    slug = re.sub(r"[^A-Z0-9]", "_", connector_name.upper())
    prefix = f"{ENV_PREFIX}{slug}_"
    overrides: dict[str, str] = {}
    for name, value in source.items():
        if not name.startswith(prefix) or not value.strip():
            continue
        key = name.removeprefix(prefix).lower().replace("_", ".", 1)
        overrides[key] = value.strip()
    return overrides
