"""Translate Jira bridge payloads into vendor-neutral records."""

from __future__ import annotations

from typing import TYPE_CHECKING

from syncdock.domain.model import RemoteIssue, RemoteProject

from .schema import GetIssuesRequest, PortfolioEntryData

if TYPE_CHECKING:
    from syncdock.domain.model import PortfolioEntry

    from .schema import IssuePayload, ProjectPayload


def parse_issue(issue: IssuePayload, *, host_url: str, is_defect: bool) -> RemoteIssue:
    """Build a ``RemoteIssue``; anything served by the defects endpoint is a defect."""

    return RemoteIssue(
        external_id=issue.id,
        attributes={"category": issue.category, "status": issue.status},
        name=issue.name,
        is_defect=is_defect or issue.defect,
        description=issue.description,
        category=issue.category,
        status=issue.status,
        priority=issue.priority,
        severity=issue.severity,
        author_email=issue.author_email,
        story_points=issue.story_points,
        initial_estimation=issue.estimation,
        is_scoped=issue.in_scope,
        link_url=f"{host_url}/browse/{issue.id}",
    )


def parse_project(project: ProjectPayload) -> RemoteProject:
    return RemoteProject(
        external_id=project.project_ref_id,
        name=project.name,
        key=project.key,
        description=project.description,
    )


def build_issues_request(project_ref_id: str, root: PortfolioEntry) -> GetIssuesRequest:
    return GetIssuesRequest(
        project_ref_id=project_ref_id,
        parameters=PortfolioEntryData(
            id=root.id,
            ref_id=root.ref_id,
            governance_id=root.governance_id,
            erp_ref_id=root.erp_ref_id,
            name=root.name,
            description=root.description,
            custom_attributes=dict(root.attributes),
        ),
    )
