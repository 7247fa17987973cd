"""Translate Redmine payloads into vendor-neutral records."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.domain.model import RemoteAccount, RemoteIssue, RemoteProject, RemoteVersion

from .schema import NewProject, UserChanges

if TYPE_CHECKING:
    from collections.abc import Mapping

    from syncdock.domain.model import UserAccount

    from .schema import Issue, Project, User, Version, WithCustomFields

log = getLogger(__name__)

STATUS_ACTIVE = 1
STATUS_LOCKED = 3
CUSTOM_FIELD_PREFIX = "cf_"


@dataclass(frozen=True, slots=True)
class CustomFieldIds:
    """Redmine custom field ids carrying scope, story points and remaining effort."""

    is_scoped: int | None = None
    story_points: int | None = None
    remaining_effort: int | None = None

    @classmethod
    def from_settings(cls, custom_fields: Mapping[str, str]) -> CustomFieldIds:
        return cls(
            is_scoped=_field_id(custom_fields, "is_scoped"),
            story_points=_field_id(custom_fields, "story_points"),
            remaining_effort=_field_id(custom_fields, "remaining_effort"),
        )


def _field_id(custom_fields: Mapping[str, str], name: str) -> int | None:
    raw = custom_fields.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        log.warning("Ignoring custom_field.%s=%r: not a Redmine custom field id", name, raw)
        return None


def to_bool(value: str | None) -> bool | None:
    if value == "1":
        return True
    if value == "0":
        return False
    return None


def to_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def to_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None


def custom_field_attributes(payload: WithCustomFields) -> dict[str, str | None]:
    return {
        f"{CUSTOM_FIELD_PREFIX}{custom_field.id}": (
            custom_field.value.lower() if custom_field.value is not None else None
        )
        for custom_field in payload.custom_fields
    }


def parse_issue(
    issue: Issue,
    *,
    host_url: str,
    is_defect: bool,
    fields: CustomFieldIds,
    effort: float,
    author_logins: Mapping[int, str],
) -> RemoteIssue:
    category = issue.category.name if issue.category is not None else None
    priority = issue.priority.name if issue.priority is not None else None
    attributes = custom_field_attributes(issue)
    attributes["category"] = category
    return RemoteIssue(
        external_id=str(issue.id),
        attributes=attributes,
        name=issue.subject,
        is_defect=is_defect,
        description=issue.description,
        category=category,
        status=issue.status.name if issue.status is not None else None,
        priority=priority,
        # Redmine has no severity; the priority stands in for it
        severity=priority,
        author_login=author_logins.get(issue.author.id) if issue.author is not None else None,
        story_points=to_int(issue.custom_field(fields.story_points)),
        initial_estimation=(
            round(issue.estimated_hours, 2) if issue.estimated_hours is not None else None
        ),
        effort=effort,
        remaining_effort=to_float(issue.custom_field(fields.remaining_effort)),
        is_scoped=to_bool(issue.custom_field(fields.is_scoped)),
        iteration_external_id=(
            str(issue.fixed_version.id) if issue.fixed_version is not None else None
        ),
        link_url=f"{host_url}/issues/{issue.id}",
    )


def parse_version(version: Version, *, fields: CustomFieldIds) -> RemoteVersion:
    return RemoteVersion(
        external_id=str(version.id),
        attributes=custom_field_attributes(version),
        name=version.name,
        description=version.description,
        end_date=version.due_date,
        is_closed=version.status == "closed",
        story_points=to_int(version.custom_field(fields.story_points)),
    )


def parse_project(project: Project) -> RemoteProject:
    return RemoteProject(
        external_id=str(project.id),
        name=project.name,
        key=project.identifier,
        description=project.description,
    )


def build_new_project(record: RemoteProject) -> NewProject:
    if not record.key:
        raise ValueError(f"Redmine projects need an identifier, got none for {record.name!r}")
    return NewProject(
        name=record.name, identifier=record.key.lower(), description=record.description
    )


def parse_user(user: User) -> RemoteAccount:
    return RemoteAccount(
        external_id=str(user.id),
        login=user.login,
        first_name=user.firstname,
        last_name=user.lastname,
        mail=user.mail,
        is_locked=user.status == STATUS_LOCKED,
    )


def build_user_changes(account: UserAccount, *, creating: bool = False) -> UserChanges:
    return UserChanges(
        login=account.uid,
        firstname=account.first_name,
        lastname=account.last_name,
        mail=account.mail,
        status=STATUS_ACTIVE if account.is_active else STATUS_LOCKED,
        generate_password=True if creating else None,
        send_information=True if creating else None,
    )
