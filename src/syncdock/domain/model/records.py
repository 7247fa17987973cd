"""Vendor-neutral views of records owned by an external system."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import date


@dataclass(frozen=True, slots=True, kw_only=True)
class ExternalRecord:
    """An external record identified by its vendor id.

    ``attributes`` holds raw string values that filter rules compare against,
    keyed the way the vendor names them (``category``, ``cf_12``...).
    """

    external_id: str
    attributes: Mapping[str, str | None] = field(default_factory=dict)

    def attribute(self, key: str) -> str | None:
        return self.attributes.get(key)


@dataclass(frozen=True, slots=True, kw_only=True)
class RemoteIssue(ExternalRecord):
    """A need or defect tracked by the external system."""

    name: str
    is_defect: bool = False
    description: str | None = None
    category: str | None = None
    status: str | None = None
    priority: str | None = None
    severity: str | None = None
    author_email: str | None = None
    author_login: str | None = None
    story_points: int | None = None
    initial_estimation: float | None = None
    effort: float | None = None
    remaining_effort: float | None = None
    is_scoped: bool | None = None
    iteration_external_id: str | None = None
    link_url: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class RemoteVersion(ExternalRecord):
    """A version or sprint, reconciled into an internal iteration."""

    name: str
    description: str | None = None
    end_date: date | None = None
    is_closed: bool = False
    story_points: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class RemoteProject(ExternalRecord):
    """A project container in the external system.

    ``external_id`` is empty until the remote side has created the project.
    """

    name: str
    key: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class RemoteAccount(ExternalRecord):
    login: str
    first_name: str
    last_name: str
    mail: str
    is_locked: bool = False


@dataclass(frozen=True, slots=True)
class AlreadyExists:
    """Returned by ``create`` when the remote side already holds the record."""

    external_id: str | None = None
