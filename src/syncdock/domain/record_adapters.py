"""Record adapters writing remote issues and versions into internal records.

Vendor clients translate their payloads into ``RemoteIssue`` and
``RemoteVersion``; the adapters here are shared by every vendor and only
differ by the remote client and query they are given.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from syncdock.domain.field_mapping import FieldMappingStore, FieldMappingTable
from syncdock.domain.model import (
    Iteration,
    RelationType,
    RemoteIssue,
    RemoteVersion,
    Requirement,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from syncdock.domain.model import ExternalRecord, ParentLink, ReconciliationScope
    from syncdock.domain.ports import RemoteClient, RemoteQuery, SyncRepositories


def _accept_all(_record: ExternalRecord) -> bool:
    return True


@dataclass(frozen=True, slots=True, kw_only=True)
class RequirementMappings:
    status: FieldMappingTable
    priority: FieldMappingTable
    severity: FieldMappingTable


@dataclass(slots=True, kw_only=True)
class RequirementRecordAdapter:
    """Reconciles needs (``is_defect=False``) or defects under one root."""

    remote: RemoteClient
    query: RemoteQuery
    repositories: SyncRepositories
    mappings: RequirementMappings
    parent: ParentLink
    is_defect: bool = False
    predicate: Callable[[ExternalRecord], bool] = _accept_all

    def fetch_external_children(self, scope: ReconciliationScope) -> list[ExternalRecord]:
        return self.remote.fetch(scope, self.query)

    def accepts(self, record: ExternalRecord) -> bool:
        return (
            isinstance(record, RemoteIssue)
            and record.is_defect == self.is_defect
            and self.predicate(record)
        )

    def upsert_internal(self, record: ExternalRecord, existing_internal_id: int | None) -> int:
        if not isinstance(record, RemoteIssue):
            raise TypeError(f"Expected a RemoteIssue, got {type(record).__name__}")
        requirements = self.repositories.requirements
        requirement = (
            requirements.get(existing_internal_id) if existing_internal_id is not None else None
        )
        if requirement is None:
            requirement = Requirement(portfolio_entry_id=self._root_id(), name=record.name)

        requirement.is_defect = self.is_defect
        requirement.external_ref_id = record.external_id
        requirement.external_link = record.link_url
        requirement.name = record.name
        requirement.description = record.description
        requirement.category = record.category
        requirement.status_id = FieldMappingStore.translate(self.mappings.status, record.status)
        requirement.priority_id = FieldMappingStore.translate(
            self.mappings.priority, record.priority
        )
        requirement.severity_id = FieldMappingStore.translate(
            self.mappings.severity, record.severity
        )
        requirement.author_id = self._author_id(record)
        requirement.iteration_id = self._iteration_id(record)
        requirement.story_points = record.story_points
        requirement.initial_estimation = record.initial_estimation
        requirement.effort = record.effort
        requirement.remaining_effort = record.remaining_effort
        requirement.is_scoped = record.is_scoped

        if requirement.id is None:
            return requirements.add(requirement)
        return requirement.id

    def delete_internal(self, internal_id: int) -> None:
        self.repositories.requirements.delete(internal_id)

    def _root_id(self) -> int:
        if self.query.root.id is None:
            raise ValueError("Root record must be persisted before reconciliation")
        return self.query.root.id

    def _author_id(self, record: RemoteIssue) -> int | None:
        if record.author_email is None and record.author_login is None:
            return None
        return self.repositories.actors.find_id(email=record.author_email, uid=record.author_login)

    def _iteration_id(self, record: RemoteIssue) -> int | None:
        if record.iteration_external_id is None:
            return None
        return self.repositories.links.resolve_internal_id(
            record.iteration_external_id, RelationType.PORTFOLIO_ENTRY_ITERATION, self.parent
        )


@dataclass(slots=True, kw_only=True)
class IterationRecordAdapter:
    remote: RemoteClient
    query: RemoteQuery
    repositories: SyncRepositories
    source: str
    predicate: Callable[[ExternalRecord], bool] = _accept_all

    def fetch_external_children(self, scope: ReconciliationScope) -> list[ExternalRecord]:
        return self.remote.fetch(scope, self.query)

    def accepts(self, record: ExternalRecord) -> bool:
        return isinstance(record, RemoteVersion) and self.predicate(record)

    def upsert_internal(self, record: ExternalRecord, existing_internal_id: int | None) -> int:
        if not isinstance(record, RemoteVersion):
            raise TypeError(f"Expected a RemoteVersion, got {type(record).__name__}")
        iterations = self.repositories.iterations
        iteration = (
            iterations.get(existing_internal_id) if existing_internal_id is not None else None
        )
        if iteration is None:
            root_id = self.query.root.id
            if root_id is None:
                raise ValueError("Root record must be persisted before reconciliation")
            iteration = Iteration(portfolio_entry_id=root_id, name=record.name)

        iteration.name = record.name
        iteration.description = record.description
        iteration.end_date = record.end_date
        iteration.is_closed = record.is_closed
        iteration.story_points = record.story_points
        iteration.source = self.source

        if iteration.id is None:
            return iterations.add(iteration)
        return iteration.id

    def delete_internal(self, internal_id: int) -> None:
        self.repositories.iterations.delete(internal_id)

