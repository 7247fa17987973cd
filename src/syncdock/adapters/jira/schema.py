"""Pydantic models describing the Jira bridge REST payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class JiraBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ErrorResponse(JiraBaseModel):
    message: str
    code: int | None = None
    trace: str | None = None


class PingResponse(JiraBaseModel):
    authenticated: bool = False


class ConfigResponse(JiraBaseModel):
    statuses: list[str] = Field(default_factory=list[str])
    priorities: list[str] = Field(default_factory=list[str])
    severities: list[str] = Field(default_factory=list[str])
    all_possible_fields: dict[str, str] = Field(
        default_factory=dict[str, str], alias="allPossibleJiraFields"
    )


class ProjectPayload(JiraBaseModel):
    project_ref_id: str = Field(alias="projectRefId")
    key: str | None = None
    name: str
    description: str | None = None


class CreateProjectRequest(JiraBaseModel):
    key: str | None = None
    name: str
    description: str | None = None


class CreateProjectResponse(JiraBaseModel):
    project_ref_id: str | None = Field(default=None, alias="projectRefId")
    success: bool = False
    already_exists: bool = Field(default=False, alias="alreadyExists")


class PortfolioEntryData(JiraBaseModel):
    """Root record attributes sent along so the bridge can filter issues."""

    id: int | None = None
    ref_id: str | None = Field(default=None, alias="refId")
    governance_id: str | None = Field(default=None, alias="governanceId")
    erp_ref_id: str | None = Field(default=None, alias="erpRefId")
    name: str
    description: str | None = None
    custom_attributes: dict[str, str] = Field(
        default_factory=dict[str, str], alias="customAttributes"
    )


class GetIssuesRequest(JiraBaseModel):
    project_ref_id: str = Field(alias="projectRefId")
    parameters: PortfolioEntryData


class IssuePayload(JiraBaseModel):
    id: str
    defect: bool = False
    name: str
    description: str | None = None
    category: str | None = None
    status: str | None = None
    priority: str | None = None
    severity: str | None = None
    author_email: str | None = Field(default=None, alias="authorEmail")
    story_points: int | None = Field(default=None, alias="storyPoints")
    estimation: float | None = None
    in_scope: bool | None = Field(default=None, alias="inScope")

    _normalize_blanks = field_validator(
        "category", "status", "priority", "severity", "author_email", mode="before"
    )(_blank_to_none)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value
