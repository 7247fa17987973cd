"""Ports for persisting links, registrations, configuration and domain records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from syncdock.domain.model import (
        Actor,
        Iteration,
        LinkRecord,
        ParentLink,
        PortfolioEntry,
        RegistrationState,
        Requirement,
        UserAccount,
    )


@runtime_checkable
class LinkRegistry(Protocol):
    """Persistent identity links between internal and external records."""

    def find_links_for(self, internal_id: int, relation_type: str) -> list[str]: ...

    def find_child_links(
        self,
        parent: ParentLink,
        child_relation_type: str,
    ) -> list[tuple[int, str]]: ...

    def resolve_internal_id(
        self,
        external_id: str,
        relation_type: str,
        parent: ParentLink | None = None,
    ) -> int | None: ...

    def create_link(self, link: LinkRecord, *, one_to_one: bool = False) -> None: ...

    def delete_link(self, internal_id: int, external_id: str, relation_type: str) -> None: ...


@runtime_checkable
class RegistrationRepository(Protocol):
    def get(self, root_id: int) -> RegistrationState | None: ...

    def save(self, state: RegistrationState) -> None: ...

    def remove(self, root_id: int) -> None: ...

    def registered_root_ids(self) -> list[int]: ...


@runtime_checkable
class ConfigurationStore(Protocol):
    """Byte-blob configuration blocks, one per logical group."""

    def read(self, block_id: str) -> bytes | None: ...

    def write(self, block_id: str, content: bytes) -> None: ...


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract keyed by integer primary keys."""

    def get(self, entity_id: int) -> TEntity | None: ...

    def add(self, entity: TEntity) -> int: ...

    def delete(self, entity_id: int) -> None: ...


@runtime_checkable
class PortfolioEntryRepository(Repository["PortfolioEntry"], Protocol):
    def list_by_ids(self, entity_ids: Sequence[int]) -> list[PortfolioEntry]: ...


@runtime_checkable
class RequirementRepository(Repository["Requirement"], Protocol):
    def list_for_portfolio_entry(
        self, portfolio_entry_id: int, *, is_defect: bool | None = None
    ) -> list[Requirement]: ...


@runtime_checkable
class IterationRepository(Repository["Iteration"], Protocol):
    def list_for_portfolio_entry(self, portfolio_entry_id: int) -> list[Iteration]: ...


@runtime_checkable
class ActorDirectory(Protocol):
    """Resolves remote authors to internal actors."""

    def find_id(self, *, email: str | None = None, uid: str | None = None) -> int | None: ...

    def add(self, actor: Actor) -> int: ...


@runtime_checkable
class UserAccountRepository(Repository["UserAccount"], Protocol):
    def list_all(self) -> list[UserAccount]: ...

    def find_by_uid(self, uid: str) -> UserAccount | None: ...
