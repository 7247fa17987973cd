"""Database lifecycle and the unit of work used by every sync transaction.

``startup`` binds one engine per process and migrates it. Each
``SqlAlchemySyncUnitOfWork`` then opens its own session, so a connector
commits once per reconciliation scope and a failing scope rolls back alone.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from syncdock.adapters.sqlalchemy.mappings import start_mappers
from syncdock.adapters.sqlalchemy.migrations import upgrade_head
from syncdock.adapters.sqlalchemy.repositories import (
    SqlAlchemyActorDirectory,
    SqlAlchemyConfigurationStore,
    SqlAlchemyIterationRepository,
    SqlAlchemyLinkRegistry,
    SqlAlchemyPortfolioEntryRepository,
    SqlAlchemyRegistrationRepository,
    SqlAlchemyRequirementRepository,
    SqlAlchemyUserAccountRepository,
)
from syncdock.config import get_database_config
from syncdock.domain.ports import DEFAULT_OWNER, SyncRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the database is used before ``startup`` or started twice."""


_session_factory: sessionmaker[Session] | None = None


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the process-wide engine and bring its schema to the latest revision."""

    global _session_factory  # noqa: PLW0603
    if _session_factory is not None and not force:
        raise StartupError("Database already started. Pass force=True to rebind it.")
    if engine is None:
        engine = create_engine(database_uri or get_database_config().uri, future=True)
    start_mappers()
    upgrade_head(engine=engine)
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    log.debug("Database ready at %s", engine.url.render_as_string(hide_password=True))


def configured_engine() -> Engine | None:
    return None if _session_factory is None else _session_factory.kw["bind"]


def is_started() -> bool:
    return _session_factory is not None


def shutdown() -> None:
    global _session_factory  # noqa: PLW0603
    engine = configured_engine()
    if engine is not None:
        engine.dispose()
    _session_factory = None


class SqlAlchemySyncUnitOfWork:
    """Links, registrations, configuration blocks and domain records in one session.

    Links and registrations are those of ``owner``, the connector name.
    """

    def __init__(self, owner: str = DEFAULT_OWNER) -> None:
        if _session_factory is None:
            raise StartupError(
                "Database not started. Call syncdock.adapters.sqlalchemy.unit_of_work.startup()"
                " before opening a unit of work."
            )
        self.owner = owner
        self._session_factory = _session_factory
        self._session: Session | None = None
        self._repositories: SyncRepositories | None = None

    def __enter__(self) -> SqlAlchemySyncUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        session = self._session_factory()
        self._session = session
        self._repositories = SyncRepositories(
            links=SqlAlchemyLinkRegistry(session, self.owner),
            registrations=SqlAlchemyRegistrationRepository(session, self.owner),
            configuration=SqlAlchemyConfigurationStore(session),
            portfolio_entries=SqlAlchemyPortfolioEntryRepository(session),
            requirements=SqlAlchemyRequirementRepository(session),
            iterations=SqlAlchemyIterationRepository(session),
            actors=SqlAlchemyActorDirectory(session),
            user_accounts=SqlAlchemyUserAccountRepository(session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        if exc_type is not None:
            session.rollback()
        session.close()
        self._session = None
        self._repositories = None
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not open")
        return self._session

    @property
    def repositories(self) -> SyncRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work is not open")
        return self._repositories

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


if TYPE_CHECKING:
    from syncdock.domain.ports import SyncUnitOfWork, SyncUnitOfWorkFactory

    _uow_check: SyncUnitOfWork = SqlAlchemySyncUnitOfWork()
    _factory_check: SyncUnitOfWorkFactory = SqlAlchemySyncUnitOfWork
