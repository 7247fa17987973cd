"""Field mapping tables translating external labels into internal ids.

Tables are stored as flat ``KEY=value`` text blocks through the configuration
store. Reloading from the external system only ever adds keys, so values an
operator typed in survive any number of reloads.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.config.connector import parse_properties, render_properties
from syncdock.config.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from syncdock.domain.ports import ConfigurationStore

log = getLogger(__name__)

_NON_LETTERS = re.compile(r"[^A-Z]+")
ENCODING = "utf-8"


def normalize_key(value: str) -> str:
    """Uppercase ``value`` and collapse every run of non-letters to ``_``."""

    return _NON_LETTERS.sub("_", value.upper())


@dataclass(slots=True)
class FieldMappingTable:
    """Ordered ``external key -> internal id`` table; ``None`` means unmapped."""

    table_id: str
    entries: dict[str, int | None] = field(default_factory=dict)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and normalize_key(key) in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, external_key: str) -> int | None:
        return self.entries.get(normalize_key(external_key))

    def merged_with(self, discovered_keys: Iterable[str]) -> FieldMappingTable:
        entries = dict(self.entries)
        for key in discovered_keys:
            entries.setdefault(normalize_key(key), None)
        return FieldMappingTable(self.table_id, entries)


def parse_table(table_id: str, content: bytes) -> FieldMappingTable:
    entries: dict[str, int | None] = {}
    for key, value in parse_properties(content.decode(ENCODING)).items():
        if not value:
            entries[normalize_key(key)] = None
            continue
        try:
            entries[normalize_key(key)] = int(value)
        except ValueError as exc:
            raise ConfigurationError(
                f"Mapping table {table_id!r} maps {key!r} to {value!r}, expected an internal id"
            ) from exc
    return FieldMappingTable(table_id, entries)


def render_table(table: FieldMappingTable, *, generated_at: datetime) -> bytes:
    header = (
        f"pre-loaded configuration on {generated_at.isoformat(timespec='seconds')}",
        "format: {external_key}={internal_id}, leave the value empty to ignore the key",
    )
    values = {key: "" if value is None else str(value) for key, value in table.entries.items()}
    return render_properties(values, header=header).encode(ENCODING)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FieldMappingStore:
    """Loads, reloads and applies mapping tables kept in a configuration store."""

    def __init__(
        self,
        configuration: ConfigurationStore,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.configuration = configuration
        self._now = now

    def load(self, table_id: str) -> FieldMappingTable:
        content = self.configuration.read(table_id)
        if content is None:
            return FieldMappingTable(table_id)
        return parse_table(table_id, content)

    def reconcile_keys(self, table_id: str, discovered_keys: Iterable[str]) -> FieldMappingTable:
        current = self.load(table_id)
        merged = current.merged_with(discovered_keys)
        self.configuration.write(table_id, render_table(merged, generated_at=self._now()))
        added = len(merged) - len(current)
        log.info("Reloaded mapping table %s: %s keys, %s new", table_id, len(merged), added)
        return merged

    @staticmethod
    def translate(table: FieldMappingTable, external_key: str | None) -> int | None:
        if external_key is None:
            return None
        return table.get(external_key)
