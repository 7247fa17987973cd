"""Identity links between internal records and external records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class RelationType(StrEnum):
    PORTFOLIO_ENTRY = "PORTFOLIO_ENTRY"
    PORTFOLIO_ENTRY_NEED = "PORTFOLIO_ENTRY_NEED"
    PORTFOLIO_ENTRY_DEFECT = "PORTFOLIO_ENTRY_DEFECT"
    PORTFOLIO_ENTRY_ITERATION = "PORTFOLIO_ENTRY_ITERATION"
    USER = "USER"
    ACCOUNT_FEED = "ACCOUNT_FEED"
    ACCOUNT_FEED_USER = "ACCOUNT_FEED_USER"


ONE_TO_ONE_RELATIONS: frozenset[str] = frozenset({RelationType.USER})


@dataclass(frozen=True, slots=True, kw_only=True)
class ParentLink:
    """The unscoped link a scoped child link hangs under."""

    internal_id: int
    external_id: str
    relation_type: str


@dataclass(frozen=True, slots=True, kw_only=True)
class LinkRecord:
    internal_id: int
    external_id: str
    relation_type: str
    parent: ParentLink | None = None

    @property
    def is_scoped(self) -> bool:
        return self.parent is not None

    def as_parent(self) -> ParentLink:
        return ParentLink(
            internal_id=self.internal_id,
            external_id=self.external_id,
            relation_type=self.relation_type,
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconciliationScope:
    """One parent association plus the kind of children reconciled beneath it."""

    parent: ParentLink
    child_relation_type: str

    def describe(self) -> str:
        return (
            f"{self.child_relation_type} under {self.parent.relation_type} "
            f"{self.parent.internal_id}/{self.parent.external_id}"
        )


COLLECTION_RELATIONS: dict[str, str] = {
    "iterations": RelationType.PORTFOLIO_ENTRY_ITERATION,
    "needs": RelationType.PORTFOLIO_ENTRY_NEED,
    "defects": RelationType.PORTFOLIO_ENTRY_DEFECT,
}
