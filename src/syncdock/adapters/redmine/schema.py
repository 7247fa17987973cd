"""Pydantic models for the subset of the Redmine REST API the connector reads."""

from __future__ import annotations

from datetime import date  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RedmineBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class NamedRef(RedmineBaseModel):
    id: int
    name: str | None = None


class CustomFieldValue(RedmineBaseModel):
    id: int
    name: str | None = None
    value: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _flatten(cls, value: object) -> object:
        # multi-value fields come back as lists
        if isinstance(value, list):
            return ";".join(str(item) for item in value)
        if isinstance(value, int | float | bool):
            return str(value)
        return value


class WithCustomFields(RedmineBaseModel):
    custom_fields: list[CustomFieldValue] = Field(default_factory=list[CustomFieldValue])

    def custom_field(self, field_id: int | None) -> str | None:
        if field_id is None:
            return None
        for custom_field in self.custom_fields:
            if custom_field.id == field_id:
                return custom_field.value
        return None


class Issue(WithCustomFields):
    id: int
    project: NamedRef | None = None
    tracker: NamedRef | None = None
    status: NamedRef | None = None
    priority: NamedRef | None = None
    author: NamedRef | None = None
    category: NamedRef | None = None
    fixed_version: NamedRef | None = None
    subject: str
    description: str | None = None
    estimated_hours: float | None = None


class IssuePage(RedmineBaseModel):
    issues: list[Issue] = Field(default_factory=list[Issue])
    total_count: int | None = None


class Version(WithCustomFields):
    id: int
    name: str
    description: str | None = None
    status: str | None = None
    due_date: date | None = None

    @field_validator("due_date", "description", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class VersionList(RedmineBaseModel):
    versions: list[Version] = Field(default_factory=list[Version])


class TimeEntry(RedmineBaseModel):
    hours: float = 0.0


class TimeEntryPage(RedmineBaseModel):
    time_entries: list[TimeEntry] = Field(default_factory=list[TimeEntry])
    total_count: int | None = None


class IssueStatusList(RedmineBaseModel):
    issue_statuses: list[NamedRef] = Field(default_factory=list[NamedRef])


class IssuePriorityList(RedmineBaseModel):
    issue_priorities: list[NamedRef] = Field(default_factory=list[NamedRef])


class Project(RedmineBaseModel):
    id: int
    name: str
    identifier: str | None = None
    description: str | None = None


class ProjectPage(RedmineBaseModel):
    projects: list[Project] = Field(default_factory=list[Project])
    total_count: int | None = None


class ProjectEnvelope(RedmineBaseModel):
    project: Project


class NewProject(RedmineBaseModel):
    name: str
    identifier: str
    description: str | None = None


class User(RedmineBaseModel):
    id: int
    login: str = ""
    firstname: str = ""
    lastname: str = ""
    mail: str = ""
    status: int | None = None


class UserPage(RedmineBaseModel):
    users: list[User] = Field(default_factory=list[User])
    total_count: int | None = None


class UserEnvelope(RedmineBaseModel):
    user: User


class UserChanges(RedmineBaseModel):
    login: str
    firstname: str
    lastname: str
    mail: str
    status: int
    generate_password: bool | None = None
    send_information: bool | None = None


class ErrorList(RedmineBaseModel):
    errors: list[str] = Field(default_factory=list[str])
