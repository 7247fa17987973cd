"""SQLAlchemy adapter package for syncdock."""

from __future__ import annotations

from .mappings import mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyActorDirectory,
    SqlAlchemyConfigurationStore,
    SqlAlchemyIterationRepository,
    SqlAlchemyLinkRegistry,
    SqlAlchemyPortfolioEntryRepository,
    SqlAlchemyRegistrationRepository,
    SqlAlchemyRequirementRepository,
    SqlAlchemyUserAccountRepository,
)
from .unit_of_work import SqlAlchemySyncUnitOfWork, shutdown, startup

__all__ = [
    "SqlAlchemyActorDirectory",
    "SqlAlchemyConfigurationStore",
    "SqlAlchemyIterationRepository",
    "SqlAlchemyLinkRegistry",
    "SqlAlchemyPortfolioEntryRepository",
    "SqlAlchemyRegistrationRepository",
    "SqlAlchemyRequirementRepository",
    "SqlAlchemySyncUnitOfWork",
    "SqlAlchemyUserAccountRepository",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
