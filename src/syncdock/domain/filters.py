"""Filter rules comparing external record attributes with root record values.

Configured rules name an accessor by key (``governance_id``,
``attribute.budget_code``...). Keys are resolved against a registry of typed
accessor functions when the connector loads its configuration, so a typo
fails the start instead of silently matching nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from syncdock.config.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from syncdock.config.connector import FilterRuleConfig
    from syncdock.domain.model import ExternalRecord, PortfolioEntry

type Accessor = Callable[[PortfolioEntry], object | None]

ATTRIBUTE_PREFIX = "attribute."


def _optional_text(value: object | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class FilterRegistry:
    """Maps filter keys to accessor functions over portfolio entries."""

    def __init__(self, accessors: Mapping[str, Accessor] | None = None) -> None:
        self._accessors: dict[str, Accessor] = dict(accessors or {})

    def register(self, key: str, accessor: Accessor) -> None:
        if key in self._accessors:
            raise ValueError(f"Filter accessor {key!r} is already registered")
        self._accessors[key] = accessor

    def keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._accessors))

    def resolve(self, key: str) -> Accessor:
        accessor = self._accessors.get(key)
        if accessor is not None:
            return accessor
        if key.startswith(ATTRIBUTE_PREFIX) and len(key) > len(ATTRIBUTE_PREFIX):
            name = key.removeprefix(ATTRIBUTE_PREFIX)
            return lambda entry: entry.attributes.get(name)
        known = ", ".join(self.keys())
        raise ConfigurationError(
            f"Unknown filter attribute {key!r}; use one of {known} or {ATTRIBUTE_PREFIX}<name>"
        )


def default_filter_registry() -> FilterRegistry:
    return FilterRegistry(
        {
            "id": lambda entry: entry.id,
            "name": lambda entry: entry.name,
            "ref_id": lambda entry: entry.ref_id,
            "governance_id": lambda entry: entry.governance_id,
            "erp_ref_id": lambda entry: entry.erp_ref_id,
        }
    )


@dataclass(frozen=True, slots=True)
class FilterRule:
    """A resolved rule; ``local`` rules are checked here rather than sent remotely."""

    remote_key: str
    accessor: Accessor
    local: bool = False

    def expected_value(self, root: PortfolioEntry) -> str | None:
        return _optional_text(self.accessor(root))

    def matches(self, record: ExternalRecord, root: PortfolioEntry) -> bool:
        expected = self.expected_value(root)
        actual = _optional_text(record.attribute(self.remote_key))
        if expected is None or actual is None:
            return expected is None and actual is None
        return actual.lower() == expected.lower()


def resolve_rules(
    configs: Iterable[FilterRuleConfig],
    registry: FilterRegistry,
    *,
    is_local: Callable[[str], bool],
) -> tuple[FilterRule, ...]:
    return tuple(
        FilterRule(
            config.remote_key,
            registry.resolve(config.accessor_key),
            local=is_local(config.remote_key),
        )
        for config in configs
    )


def remote_parameters(rules: Iterable[FilterRule], root: PortfolioEntry) -> dict[str, str | None]:
    return {rule.remote_key: rule.expected_value(root) for rule in rules if not rule.local}


def local_predicate(
    rules: Iterable[FilterRule], root: PortfolioEntry
) -> Callable[[ExternalRecord], bool]:
    local_rules = tuple(rule for rule in rules if rule.local)
    return lambda record: all(rule.matches(record, root) for rule in local_rules)
