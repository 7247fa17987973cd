"""Registration of root records with a connector and their project links."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.domain.errors import AlreadyRegisteredError, DuplicateLinkError, NotRegisteredError
from syncdock.domain.locks import KeyedLocks
from syncdock.domain.model import (
    COLLECTION_RELATIONS,
    AlreadyExists,
    LinkRecord,
    ParentLink,
    RegistrationState,
    RelationType,
    RemoteProject,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from syncdock.domain.model import PortfolioEntry
    from syncdock.domain.ports import RemoteClient, SyncRepositories, SyncUnitOfWork

log = getLogger(__name__)

ROOT_RELATION = RelationType.PORTFOLIO_ENTRY


def project_key_for(root: PortfolioEntry) -> str:
    """Letters-only project key derived from the root id (``105`` -> ``BAF``)."""

    if root.id is None:
        raise ValueError("Root record must be persisted before creating a project")
    return "".join(chr(ord("A") + int(digit)) for digit in str(root.id))


def delete_collection_records(
    repositories: SyncRepositories,
    parent: ParentLink,
    collection: str,
) -> int:
    """Delete every record and link reconciled for ``collection`` under ``parent``."""

    relation_type = COLLECTION_RELATIONS[collection]
    children = repositories.links.find_child_links(parent, relation_type)
    for internal_id, external_id in children:
        if collection == "iterations":
            repositories.iterations.delete(internal_id)
        else:
            repositories.requirements.delete(internal_id)
        repositories.links.delete_link(internal_id, external_id, relation_type)
    return len(children)


@dataclass(slots=True)
class RegistrationService:
    unit_of_work_factory: Callable[[], SyncUnitOfWork]
    remote: RemoteClient
    locks: KeyedLocks = field(default_factory=KeyedLocks)
    project_key: Callable[[PortfolioEntry], str] = project_key_for

    def is_registered(self, root_id: int) -> bool:
        with self.unit_of_work_factory() as uow:
            return uow.repositories.registrations.get(root_id) is not None

    def create_project(self, root_id: int) -> str:
        """Create the remote project for ``root_id`` and link it."""

        with self.unit_of_work_factory() as uow:
            root = uow.repositories.portfolio_entries.get(root_id)
        if root is None:
            raise NotRegisteredError(root_id)
        outcome = self.remote.create(
            RemoteProject(
                external_id="",
                name=root.name,
                key=self.project_key(root),
                description=root.description,
            )
        )
        if isinstance(outcome, AlreadyExists):
            raise AlreadyRegisteredError(
                f"A remote project already exists for root record {root_id}"
            )
        self.link_project(root_id, outcome)
        log.info("Created remote project %s for root record %s", outcome, root_id)
        return outcome

    def link_project(self, root_id: int, external_id: str) -> RegistrationState:
        """Link an existing remote project, registering the root if needed."""

        with self.locks.hold(root_id), self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            if repositories.portfolio_entries.get(root_id) is None:
                raise NotRegisteredError(root_id)
            if external_id in repositories.links.find_links_for(root_id, ROOT_RELATION):
                raise DuplicateLinkError(
                    f"Project {external_id} is already linked to root record {root_id}"
                )
            repositories.links.create_link(
                LinkRecord(
                    internal_id=root_id, external_id=external_id, relation_type=ROOT_RELATION
                )
            )
            state = repositories.registrations.get(root_id)
            if state is None:
                state = RegistrationState(root_id=root_id)
                repositories.registrations.save(state)
            uow.commit()
        log.info("Linked project %s to root record %s", external_id, root_id)
        return state

    def update_flags(self, root_id: int, **flags: bool) -> RegistrationState:
        """Change enabled sub-collections, deleting what disabled ones produced."""

        with self.locks.hold(root_id), self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            current = repositories.registrations.get(root_id)
            if current is None:
                raise NotRegisteredError(root_id)
            updated = current.with_flags(flags)
            disabled = updated.disabled_since(current)
            for external_id in repositories.links.find_links_for(root_id, ROOT_RELATION):
                parent = _root_parent(root_id, external_id)
                for collection in disabled:
                    delete_collection_records(repositories, parent, collection)
            repositories.registrations.save(updated)
            uow.commit()
        if disabled:
            log.info("Root record %s stopped syncing %s", root_id, ", ".join(disabled))
        return updated

    def unlink_project(self, root_id: int, external_id: str) -> None:
        with self.locks.hold(root_id), self.unit_of_work_factory() as uow:
            self._unlink(uow.repositories, root_id, external_id)
            uow.commit()

    def withdraw(self, root_id: int) -> None:
        """Remove the registration with every project link and synced record."""

        with self.locks.hold(root_id), self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            if repositories.registrations.get(root_id) is None:
                raise NotRegisteredError(root_id)
            for external_id in repositories.links.find_links_for(root_id, ROOT_RELATION):
                self._unlink(repositories, root_id, external_id)
            repositories.registrations.remove(root_id)
            uow.commit()
        log.info("Withdrew registration of root record %s", root_id)

    def search_projects(self, term: str) -> list[RemoteProject]:
        needle = term.replace("*", "").strip().lower()
        return [
            project
            for project in self.remote.list_projects()
            if needle in project.name.lower()
        ]

    @staticmethod
    def _unlink(repositories: SyncRepositories, root_id: int, external_id: str) -> None:
        parent = _root_parent(root_id, external_id)
        removed = sum(
            delete_collection_records(repositories, parent, collection)
            for collection in COLLECTION_RELATIONS
        )
        repositories.links.delete_link(root_id, external_id, ROOT_RELATION)
        log.info(
            "Unlinked project %s from root record %s (%s synced records removed)",
            external_id,
            root_id,
            removed,
        )


def _root_parent(root_id: int, external_id: str) -> ParentLink:
    return ParentLink(internal_id=root_id, external_id=external_id, relation_type=ROOT_RELATION)
