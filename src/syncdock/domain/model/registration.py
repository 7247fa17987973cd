"""Per-root flags saying which sub-collections are synchronised."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class RegistrationState:
    root_id: int
    needs: bool = False
    defects: bool = False
    iterations: bool = False

    def enabled_collections(self) -> tuple[str, ...]:
        return tuple(name for name in collection_names() if getattr(self, name))

    def disabled_since(self, previous: RegistrationState) -> tuple[str, ...]:
        """Collections enabled in ``previous`` and switched off here."""

        return tuple(
            name
            for name in collection_names()
            if getattr(previous, name) and not getattr(self, name)
        )

    def with_flags(self, flags: Mapping[str, bool]) -> RegistrationState:
        unknown = set(flags) - set(collection_names())
        if unknown:
            raise ValueError(f"Unknown sub-collections: {', '.join(sorted(unknown))}")
        return replace(self, **flags)


def collection_names() -> tuple[str, ...]:
    return tuple(item.name for item in fields(RegistrationState) if item.name != "root_id")
