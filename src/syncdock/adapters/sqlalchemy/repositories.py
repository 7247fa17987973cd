"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, cast

from sqlalchemy import and_, delete, func, insert, or_, select, update

from syncdock.adapters.sqlalchemy.mappings import (
    actor_table,
    configuration_block_table,
    integration_link_table,
    iteration_table,
    portfolio_entry_table,
    registration_table,
    requirement_table,
    user_account_table,
)
from syncdock.domain.errors import DuplicateLinkError, InvalidLinkError
from syncdock.domain.model import (
    ONE_TO_ONE_RELATIONS,
    Actor,
    Iteration,
    PortfolioEntry,
    RegistrationState,
    Requirement,
    UserAccount,
)
from syncdock.domain.ports import DEFAULT_OWNER

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import ColumnElement
    from sqlalchemy.orm import Session

    from syncdock.domain.model import LinkRecord, ParentLink

log = getLogger(__name__)

_links = integration_link_table.c


def _unscoped() -> ColumnElement[bool]:
    return _links.parent_internal_id.is_(None)


def _under(parent: ParentLink) -> ColumnElement[bool]:
    return and_(
        _links.parent_internal_id == parent.internal_id,
        _links.parent_external_id == parent.external_id,
        _links.parent_relation_type == parent.relation_type,
    )


class SqlAlchemyLinkRegistry:
    """Link registry over the ``integration_link`` table.

    Every row belongs to one connector (``owner``) and no statement reaches
    another connector's rows. Uniqueness is checked
    with a lookup before every insert; callers hold the per-root lock, so no
    concurrent writer races the check.
    """

    def __init__(self, session: Session, owner: str = DEFAULT_OWNER) -> None:
        self.session = session
        self.owner = owner

    def _owned(self) -> ColumnElement[bool]:
        return _links.owner == self.owner

    def find_links_for(self, internal_id: int, relation_type: str) -> list[str]:
        stmt = (
            select(_links.external_id)
            .where(self._owned())
            .where(_links.internal_id == internal_id)
            .where(_links.relation_type == relation_type)
            .where(_unscoped())
            .order_by(_links.id)
        )
        return list(self.session.execute(stmt).scalars())

    def find_child_links(
        self,
        parent: ParentLink,
        child_relation_type: str,
    ) -> list[tuple[int, str]]:
        stmt = (
            select(_links.internal_id, _links.external_id)
            .where(self._owned())
            .where(_links.relation_type == child_relation_type)
            .where(_under(parent))
            .order_by(_links.id)
        )
        return [
            (internal_id, external_id) for internal_id, external_id in self.session.execute(stmt)
        ]

    def resolve_internal_id(
        self,
        external_id: str,
        relation_type: str,
        parent: ParentLink | None = None,
    ) -> int | None:
        stmt = (
            select(_links.internal_id)
            .where(self._owned())
            .where(_links.external_id == external_id)
            .where(_links.relation_type == relation_type)
            .where(_unscoped() if parent is None else _under(parent))
            .order_by(_links.id)
        )
        internal_ids = list(self.session.execute(stmt).scalars())
        if len(internal_ids) > 1:
            log.warning(
                "External id %s (%s) resolves to %s internal records; using %s",
                external_id,
                relation_type,
                len(internal_ids),
                internal_ids[0],
            )
        return internal_ids[0] if internal_ids else None

    def create_link(self, link: LinkRecord, *, one_to_one: bool = False) -> None:
        if link.parent is None:
            self._check_unscoped(link, one_to_one=one_to_one)
        else:
            self._check_scoped(link, link.parent)
        parent = link.parent
        self.session.execute(
            insert(integration_link_table).values(
                owner=self.owner,
                internal_id=link.internal_id,
                external_id=link.external_id,
                relation_type=link.relation_type,
                parent_internal_id=parent.internal_id if parent else None,
                parent_external_id=parent.external_id if parent else None,
                parent_relation_type=parent.relation_type if parent else None,
            )
        )

    def delete_link(self, internal_id: int, external_id: str, relation_type: str) -> None:
        # scoped links hanging under the deleted one go with it
        self.session.execute(
            delete(integration_link_table)
            .where(self._owned())
            .where(_links.parent_internal_id == internal_id)
            .where(_links.parent_external_id == external_id)
            .where(_links.parent_relation_type == relation_type)
        )
        self.session.execute(
            delete(integration_link_table)
            .where(self._owned())
            .where(_links.internal_id == internal_id)
            .where(_links.external_id == external_id)
            .where(_links.relation_type == relation_type)
        )

    def _check_unscoped(self, link: LinkRecord, *, one_to_one: bool) -> None:
        existing = self.find_links_for(link.internal_id, link.relation_type)
        if link.external_id in existing:
            raise DuplicateLinkError(
                f"{link.relation_type} link {link.internal_id} -> {link.external_id} already exists"
            )
        if existing and (one_to_one or link.relation_type in ONE_TO_ONE_RELATIONS):
            raise DuplicateLinkError(
                f"{link.relation_type} record {link.internal_id} is already linked "
                f"to {existing[0]}"
            )

    def _check_scoped(self, link: LinkRecord, parent: ParentLink) -> None:
        parent_exists = self.session.execute(
            select(func.count())
            .select_from(integration_link_table)
            .where(self._owned())
            .where(_links.internal_id == parent.internal_id)
            .where(_links.external_id == parent.external_id)
            .where(_links.relation_type == parent.relation_type)
            .where(_unscoped())
        ).scalar_one()
        if not parent_exists:
            raise InvalidLinkError(
                f"No {parent.relation_type} link {parent.internal_id} -> {parent.external_id} "
                f"to scope {link.relation_type} {link.external_id} under"
            )
        if self.resolve_internal_id(link.external_id, link.relation_type, parent) is not None:
            raise DuplicateLinkError(
                f"{link.relation_type} {link.external_id} is already linked under "
                f"{parent.relation_type} {parent.internal_id}/{parent.external_id}"
            )


class SqlAlchemyRegistrationRepository:
    """Registrations of one connector; the same root may be registered with several."""

    def __init__(self, session: Session, owner: str = DEFAULT_OWNER) -> None:
        self.session = session
        self.owner = owner

    def _row(self, root_id: int) -> ColumnElement[bool]:
        return and_(
            registration_table.c.owner == self.owner,
            registration_table.c.root_id == root_id,
        )

    def get(self, root_id: int) -> RegistrationState | None:
        row = self.session.execute(
            select(registration_table).where(self._row(root_id))
        ).one_or_none()
        if row is None:
            return None
        return RegistrationState(
            root_id=row.root_id,
            needs=row.needs,
            defects=row.defects,
            iterations=row.iterations,
        )

    def save(self, state: RegistrationState) -> None:
        values = {
            "needs": state.needs,
            "defects": state.defects,
            "iterations": state.iterations,
        }
        if self.get(state.root_id) is None:
            self.session.execute(
                insert(registration_table).values(
                    owner=self.owner, root_id=state.root_id, **values
                )
            )
            return
        self.session.execute(
            update(registration_table).where(self._row(state.root_id)).values(**values)
        )

    def remove(self, root_id: int) -> None:
        self.session.execute(delete(registration_table).where(self._row(root_id)))

    def registered_root_ids(self) -> list[int]:
        stmt = (
            select(registration_table.c.root_id)
            .where(registration_table.c.owner == self.owner)
            .order_by(registration_table.c.root_id)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyConfigurationStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def read(self, block_id: str) -> bytes | None:
        stmt = select(configuration_block_table.c.content).where(
            configuration_block_table.c.block_id == block_id
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def write(self, block_id: str, content: bytes) -> None:
        if self.read(block_id) is None:
            self.session.execute(
                insert(configuration_block_table).values(block_id=block_id, content=content)
            )
            return
        self.session.execute(
            update(configuration_block_table)
            .where(configuration_block_table.c.block_id == block_id)
            .values(content=content, updated_at=func.now())
        )


class SqlAlchemyEntityRepository[TEntity]:
    """Shared get/add/delete for the imperatively mapped records."""

    def __init__(self, session: Session, entity_cls: type[TEntity]) -> None:
        self.session = session
        self._entity_cls = entity_cls

    def get(self, entity_id: int) -> TEntity | None:
        return self.session.get(self._entity_cls, entity_id)

    def add(self, entity: TEntity) -> int:
        self.session.add(entity)
        self.session.flush()
        entity_id = getattr(entity, "id", None)
        if entity_id is None:
            raise RuntimeError(f"{self._entity_cls.__name__} was flushed without an id")
        return entity_id

    def delete(self, entity_id: int) -> None:
        entity = self.get(entity_id)
        if entity is None:
            log.debug("%s %s already deleted", self._entity_cls.__name__, entity_id)
            return
        self.session.delete(entity)
        self.session.flush()


class SqlAlchemyPortfolioEntryRepository(SqlAlchemyEntityRepository[PortfolioEntry]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, PortfolioEntry)

    def list_by_ids(self, entity_ids: Sequence[int]) -> list[PortfolioEntry]:
        if not entity_ids:
            return []
        stmt = (
            select(PortfolioEntry)
            .where(portfolio_entry_table.c.id.in_(entity_ids))
            .order_by(portfolio_entry_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyRequirementRepository(SqlAlchemyEntityRepository[Requirement]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Requirement)

    def list_for_portfolio_entry(
        self, portfolio_entry_id: int, *, is_defect: bool | None = None
    ) -> list[Requirement]:
        stmt = (
            select(Requirement)
            .where(requirement_table.c.portfolio_entry_id == portfolio_entry_id)
            .order_by(requirement_table.c.id)
        )
        if is_defect is not None:
            stmt = stmt.where(requirement_table.c.is_defect == is_defect)
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyIterationRepository(SqlAlchemyEntityRepository[Iteration]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Iteration)

    def list_for_portfolio_entry(self, portfolio_entry_id: int) -> list[Iteration]:
        stmt = (
            select(Iteration)
            .where(iteration_table.c.portfolio_entry_id == portfolio_entry_id)
            .order_by(iteration_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def delete(self, entity_id: int) -> None:
        self.session.execute(
            update(Requirement)
            .where(requirement_table.c.iteration_id == entity_id)
            .values(iteration_id=None)
        )
        super().delete(entity_id)


class SqlAlchemyActorDirectory:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_id(self, *, email: str | None = None, uid: str | None = None) -> int | None:
        """Match by e-mail (case-insensitive) first, then by uid."""

        conditions: list[ColumnElement[bool]] = []
        if email:
            conditions.append(func.lower(actor_table.c.email) == email.lower())
        if uid:
            conditions.append(actor_table.c.uid == uid)
        if not conditions:
            return None
        rows = self.session.execute(
            select(actor_table.c.id, actor_table.c.email, actor_table.c.uid)
            .where(or_(*conditions))
            .order_by(actor_table.c.id)
        ).all()
        for row in rows:
            if email and row.email and row.email.lower() == email.lower():
                return row.id
        return rows[0].id if rows else None

    def add(self, actor: Actor) -> int:
        self.session.add(actor)
        self.session.flush()
        if actor.id is None:
            raise RuntimeError("Actor was flushed without an id")
        return actor.id


class SqlAlchemyUserAccountRepository(SqlAlchemyEntityRepository[UserAccount]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, UserAccount)

    def list_all(self) -> list[UserAccount]:
        stmt = select(UserAccount).order_by(user_account_table.c.id)
        return list(self.session.execute(stmt).scalars())

    def find_by_uid(self, uid: str) -> UserAccount | None:
        stmt = select(UserAccount).where(user_account_table.c.uid == uid)
        return self.session.execute(stmt).scalar_one_or_none()


if TYPE_CHECKING:
    from syncdock.domain.ports import (
        ActorDirectory,
        ConfigurationStore,
        IterationRepository,
        LinkRegistry,
        PortfolioEntryRepository,
        RegistrationRepository,
        RequirementRepository,
        UserAccountRepository,
    )

    _session_stub = cast("Session", object())
    _links_check: LinkRegistry = SqlAlchemyLinkRegistry(_session_stub)
    _registrations_check: RegistrationRepository = SqlAlchemyRegistrationRepository(_session_stub)
    _configuration_check: ConfigurationStore = SqlAlchemyConfigurationStore(_session_stub)
    _entries_check: PortfolioEntryRepository = SqlAlchemyPortfolioEntryRepository(_session_stub)
    _requirements_check: RequirementRepository = SqlAlchemyRequirementRepository(_session_stub)
    _iterations_check: IterationRepository = SqlAlchemyIterationRepository(_session_stub)
    _actors_check: ActorDirectory = SqlAlchemyActorDirectory(_session_stub)
    _accounts_check: UserAccountRepository = SqlAlchemyUserAccountRepository(_session_stub)
