"""Connector settings parsed from properties-style configuration blocks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from .errors import ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

REQUIRED_KEYS = ("host.url", "api.key", "load.start_time", "load.frequency")
COLLECTION_NAMES = ("iterations", "needs", "defects")
LIST_SEPARATOR = ";"


def parse_properties(text: str) -> dict[str, str]:
    """Parse ``key=value`` lines, ignoring blanks and ``#``/``!`` comments.

    A line without ``=`` declares the key with an empty value.
    """

    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


def render_properties(values: Mapping[str, str], *, header: Iterable[str] = ()) -> str:
    lines = [f"#{comment}" for comment in header]
    lines.extend(f"{key}={value}" for key, value in values.items())
    return "\n".join(lines) + "\n"


def _split_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(LIST_SEPARATOR) if item.strip())


@dataclass(frozen=True, slots=True)
class FilterRuleConfig:
    """One ``remote_key=accessor_key`` rule before accessor resolution."""

    remote_key: str
    accessor_key: str


@dataclass(frozen=True, slots=True)
class CollectionSettings:
    filters: tuple[FilterRuleConfig, ...] = ()
    trackers: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class ConnectorSettings:
    host_url: str
    api_key: str
    load_start_time: str
    load_frequency: timedelta
    api_version: str | None = None
    collections: Mapping[str, CollectionSettings] = field(default_factory=dict)
    custom_fields: Mapping[str, str] = field(default_factory=dict)

    def collection(self, name: str) -> CollectionSettings:
        return self.collections.get(name, CollectionSettings())

    @classmethod
    def from_properties(cls, values: Mapping[str, str]) -> ConnectorSettings:
        missing = [key for key in REQUIRED_KEYS if not values.get(key, "").strip()]
        if missing:
            raise MissingConfigurationError(f"Missing configuration for: {', '.join(missing)}")

        frequency_text = values["load.frequency"]
        try:
            frequency = timedelta(minutes=int(frequency_text))
        except ValueError as exc:
            raise ConfigurationError(
                f"load.frequency must be a number of minutes, got {frequency_text!r}"
            ) from exc

        collections = {
            name: CollectionSettings(
                filters=_parse_filter_rules(name, values.get(f"{name}.filter")),
                trackers=_split_list(values.get(f"{name}.trackers")),
            )
            for name in COLLECTION_NAMES
        }
        custom_fields = {
            key.removeprefix("custom_field."): value
            for key, value in values.items()
            if key.startswith("custom_field.") and value
        }
        return cls(
            host_url=values["host.url"].rstrip("/"),
            api_key=values["api.key"],
            load_start_time=values["load.start_time"],
            load_frequency=frequency,
            api_version=values.get("api.version") or None,
            collections=collections,
            custom_fields=custom_fields,
        )


def _parse_filter_rules(collection: str, raw: str | None) -> tuple[FilterRuleConfig, ...]:
    rules: list[FilterRuleConfig] = []
    for item in _split_list(raw):
        remote_key, separator, accessor_key = item.partition("=")
        if not separator or not remote_key.strip() or not accessor_key.strip():
            raise ConfigurationError(
                f"Malformed {collection}.filter rule {item!r}; expected remote_key=accessor"
            )
        rules.append(FilterRuleConfig(remote_key.strip(), accessor_key.strip()))
    return tuple(rules)
