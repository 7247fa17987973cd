"""Ports the synchronisation core depends on."""

from __future__ import annotations

from .persistence import (
    ActorDirectory,
    ConfigurationStore,
    IterationRepository,
    LinkRegistry,
    PortfolioEntryRepository,
    RegistrationRepository,
    Repository,
    RequirementRepository,
    UserAccountRepository,
)
from .remote import AccountFeedSource, RemoteAccountClient, RemoteClient, RemoteQuery
from .reporting import ReportSink
from .unit_of_work import (
    DEFAULT_OWNER,
    RepositoryCollection,
    SyncRepositories,
    SyncUnitOfWork,
    SyncUnitOfWorkFactory,
    UnitOfWork,
)

__all__ = [
    "DEFAULT_OWNER",
    "AccountFeedSource",
    "ActorDirectory",
    "ConfigurationStore",
    "IterationRepository",
    "LinkRegistry",
    "PortfolioEntryRepository",
    "RegistrationRepository",
    "RemoteAccountClient",
    "RemoteClient",
    "RemoteQuery",
    "ReportSink",
    "Repository",
    "RepositoryCollection",
    "RequirementRepository",
    "SyncRepositories",
    "SyncUnitOfWork",
    "SyncUnitOfWorkFactory",
    "UnitOfWork",
    "UserAccountRepository",
]
