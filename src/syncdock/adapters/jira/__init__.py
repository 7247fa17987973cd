"""Jira bridge connector binding."""

from __future__ import annotations

from typing import TYPE_CHECKING

from syncdock.domain.connector import VendorBinding

from .client import AUTH_HEADER, TIMESTAMP_HEADER, DigestAuth, JiraClient, compute_digest
from .schema import ConfigResponse, ErrorResponse, IssuePayload, ProjectPayload
from .translator import build_issues_request, parse_issue, parse_project

if TYPE_CHECKING:
    from syncdock.config.connector import ConnectorSettings

DEFAULT_PROPERTIES = {
    "api.version": "1",
    "load.start_time": "04h00",
    "load.frequency": "1440",
}


def build_jira_client(settings: ConnectorSettings) -> JiraClient:
    return JiraClient(
        host_url=settings.host_url,
        api_key=settings.api_key,
        api_version=settings.api_version or DEFAULT_PROPERTIES["api.version"],
    )


JIRA_BINDING = VendorBinding(
    vendor="jira",
    build_remote=build_jira_client,
    default_properties=DEFAULT_PROPERTIES,
    collections=("needs", "defects"),
)

__all__ = [
    "AUTH_HEADER",
    "DEFAULT_PROPERTIES",
    "JIRA_BINDING",
    "TIMESTAMP_HEADER",
    "ConfigResponse",
    "DigestAuth",
    "ErrorResponse",
    "IssuePayload",
    "JiraClient",
    "ProjectPayload",
    "build_issues_request",
    "build_jira_client",
    "compute_digest",
    "parse_issue",
    "parse_project",
]
