"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from syncdock.domain.ports.persistence import (
        ActorDirectory,
        ConfigurationStore,
        IterationRepository,
        LinkRegistry,
        PortfolioEntryRepository,
        RegistrationRepository,
        RequirementRepository,
        UserAccountRepository,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection."""

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class SyncRepositories(RepositoryCollection):
    """Everything one reconciliation transaction touches."""

    links: LinkRegistry
    registrations: RegistrationRepository
    configuration: ConfigurationStore
    portfolio_entries: PortfolioEntryRepository
    requirements: RequirementRepository
    iterations: IterationRepository
    actors: ActorDirectory
    user_accounts: UserAccountRepository


type SyncUnitOfWork = UnitOfWork[SyncRepositories]

DEFAULT_OWNER = "default"


class SyncUnitOfWorkFactory(Protocol):
    """Opens units of work whose links and registrations belong to ``owner``.

    Each connector passes its own name, so two connectors sharing a database
    never see or delete each other's links.
    """

    def __call__(self, owner: str = DEFAULT_OWNER) -> SyncUnitOfWork: ...
