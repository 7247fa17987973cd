"""HTTP client for the Redmine REST API."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx

from syncdock.adapters.http_resilience import (
    RateLimit,
    ResilienceConfig,
    ResilientClient,
    limiter_for,
    run_remote_call,
)
from syncdock.domain.errors import RemoteApiError
from syncdock.domain.model import AlreadyExists, RemoteProject

from .schema import (
    ErrorList,
    IssuePage,
    IssuePriorityList,
    IssueStatusList,
    ProjectEnvelope,
    ProjectPage,
    TimeEntryPage,
    UserEnvelope,
    UserPage,
    VersionList,
)
from .translator import (
    CustomFieldIds,
    build_new_project,
    build_user_changes,
    parse_issue,
    parse_project,
    parse_user,
    parse_version,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from aiolimiter import AsyncLimiter

    from syncdock.domain.model import (
        ExternalRecord,
        ReconciliationScope,
        RemoteAccount,
        UserAccount,
    )
    from syncdock.domain.ports import RemoteQuery

    from .schema import Issue, User

log = getLogger(__name__)

API_KEY_HEADER: Final[str] = "X-Redmine-API-Key"
PAGE_SIZE: Final[int] = 100
MAX_PAGES: Final[int] = 10000
ALL_USER_STATUSES: Final[str] = ""


def _default_client_factory(
    config: ResilienceConfig, limiter: AsyncLimiter | None
) -> ResilientClient:
    return ResilientClient(config, limiter)


@dataclass(slots=True)
class RedmineClient:
    host_url: str
    api_key: str
    custom_fields: CustomFieldIds = field(default_factory=CustomFieldIds)
    client_factory: Callable[[ResilienceConfig, AsyncLimiter | None], ResilientClient] = field(
        default=_default_client_factory
    )
    resilience: ResilienceConfig = field(init=False)
    limiter: AsyncLimiter | None = field(init=False)

    def __post_init__(self) -> None:
        self.host_url = self.host_url.rstrip("/")
        headers = {API_KEY_HEADER: self.api_key, "Accept": "application/json"}
        self.resilience = ResilienceConfig(
            name="redmine",
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            default_headers=headers,
        )
        self.limiter = limiter_for(self.resilience)

    # RemoteClient --------------------------------------------------------------

    def ping(self) -> bool:
        try:
            UserEnvelope.model_validate(self._call("GET", "/users/current.json"))
        except RemoteApiError:
            log.warning("Redmine at %s refused the API key", self.host_url, exc_info=True)
            return False
        return True

    def fetch(self, scope: ReconciliationScope, query: RemoteQuery) -> list[ExternalRecord]:
        project_id = scope.parent.external_id
        if query.collection == "iterations":
            payload = self._call("GET", f"/projects/{project_id}/versions.json")
            return [
                parse_version(version, fields=self.custom_fields)
                for version in VersionList.model_validate(payload).versions
            ]
        return self._fetch_issues(project_id, query)

    def create(self, record: ExternalRecord) -> str | AlreadyExists:
        if not isinstance(record, RemoteProject):
            raise TypeError(f"Redmine can only create projects, got {type(record).__name__}")
        body = {"project": build_new_project(record).model_dump(mode="json", exclude_none=True)}
        try:
            payload = self._call("POST", "/projects.json", json=body)
        except RemoteApiError as exc:
            if exc.code == httpx.codes.UNPROCESSABLE_ENTITY and "taken" in str(exc):
                return AlreadyExists()
            raise
        return str(ProjectEnvelope.model_validate(payload).project.id)

    def discover_mapping_keys(self) -> dict[str, list[str]]:
        statuses = IssueStatusList.model_validate(
            self._call("GET", "/issue_statuses.json", catalogue=True)
        )
        priorities = IssuePriorityList.model_validate(
            self._call("GET", "/enumerations/issue_priorities.json", catalogue=True)
        )
        priority_names = [item.name for item in priorities.issue_priorities if item.name]
        return {
            "status": [item.name for item in statuses.issue_statuses if item.name],
            "priority": priority_names,
            "severity": list(priority_names),
        }

    def list_projects(self) -> list[RemoteProject]:
        return [
            parse_project(project)
            for page in self._pages("/projects.json", "projects", catalogue=True)
            for project in ProjectPage.model_validate(page).projects
        ]

    # RemoteAccountClient --------------------------------------------------------

    def get_account(self, external_id: str) -> RemoteAccount | None:
        try:
            payload = self._call("GET", f"/users/{external_id}.json")
        except RemoteApiError as exc:
            if exc.code == httpx.codes.NOT_FOUND:
                return None
            raise
        return parse_user(UserEnvelope.model_validate(payload).user)

    def find_account(self, *, login: str, mail: str) -> RemoteAccount | None:
        for user in self._users():
            if user.login == login or (mail and user.mail.lower() == mail.lower()):
                return parse_user(user)
        return None

    def create_account(self, account: UserAccount) -> str:
        changes = build_user_changes(account, creating=True)
        payload = self._call(
            "POST",
            "/users.json",
            json={"user": changes.model_dump(mode="json", exclude_none=True)},
        )
        return str(UserEnvelope.model_validate(payload).user.id)

    def update_account(self, external_id: str, account: UserAccount) -> None:
        changes = build_user_changes(account)
        self._call(
            "PUT",
            f"/users/{external_id}.json",
            json={"user": changes.model_dump(mode="json", exclude_none=True)},
        )

    def delete_account(self, external_id: str) -> None:
        try:
            self._call("DELETE", f"/users/{external_id}.json")
        except RemoteApiError as exc:
            if exc.code != httpx.codes.NOT_FOUND:
                raise
            log.info("Redmine user %s was already deleted", external_id)

    # internals -------------------------------------------------------------------

    def _fetch_issues(self, project_id: str, query: RemoteQuery) -> list[ExternalRecord]:
        is_defect = query.collection == "defects"
        base_params = {key: value or "" for key, value in query.parameters.items()}
        base_params["project_id"] = project_id
        base_params["status_id"] = "*"
        author_logins = self._author_logins()

        records: list[ExternalRecord] = []
        trackers: tuple[str | None, ...] = query.trackers or (None,)
        for tracker in trackers:
            params = dict(base_params)
            if tracker is not None:
                params["tracker_id"] = tracker
            for page in self._pages("/issues.json", "issues", params=params):
                for issue in IssuePage.model_validate(page).issues:
                    records.append(
                        parse_issue(
                            issue,
                            host_url=self.host_url,
                            is_defect=is_defect,
                            fields=self.custom_fields,
                            effort=self._effort(issue),
                            author_logins=author_logins,
                        )
                    )
        return records

    def _effort(self, issue: Issue) -> float:
        return sum(
            entry.hours
            for page in self._pages(
                "/time_entries.json", "time_entries", params={"issue_id": str(issue.id)}
            )
            for entry in TimeEntryPage.model_validate(page).time_entries
        )

    def _author_logins(self) -> dict[int, str]:
        try:
            return {user.id: user.login for user in self._users()}
        except RemoteApiError:
            log.warning("Impossible to get the Redmine users; authors are left empty")
            return {}

    def _users(self) -> Iterator[User]:
        params = {"status": ALL_USER_STATUSES}
        for page in self._pages("/users.json", "users", params=params):
            yield from UserPage.model_validate(page).users

    def _pages(
        self,
        path: str,
        items_key: str,
        *,
        params: dict[str, str] | None = None,
        catalogue: bool = False,
    ) -> Iterator[object]:
        """Yield raw pages until one comes back shorter than ``PAGE_SIZE``."""

        for page_number in range(MAX_PAGES):
            page_params = dict(params or {})
            page_params["limit"] = str(PAGE_SIZE)
            page_params["offset"] = str(page_number * PAGE_SIZE)
            log.debug("Fetching %s page %s", path, page_number)
            payload = self._call("GET", path, params=page_params, catalogue=catalogue)
            yield payload
            items = payload.get(items_key) if isinstance(payload, dict) else None
            if not isinstance(items, list) or len(items) < PAGE_SIZE:
                return
        log.warning("Stopped paging %s after %s pages", path, MAX_PAGES)

    def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: object = None,
        catalogue: bool = False,
    ) -> object:
        config = self.resilience.for_catalogue() if catalogue else self.resilience

        async def call() -> httpx.Response:
            async with self.client_factory(config, self.limiter) as client:
                return await client.request(
                    method, f"{self.host_url}{path}", params=params, json=json
                )

        response = run_remote_call(
            f"Redmine {method} {path}", call, timeout_seconds=config.timeout_seconds
        )
        return _decode(response, path)


def _decode(response: httpx.Response, path: str) -> object:
    if response.status_code == httpx.codes.UNPROCESSABLE_ENTITY:
        errors = ErrorList.model_validate(response.json()).errors
        message = "; ".join(errors) or f"Redmine rejected {path}"
        raise RemoteApiError(message, code=response.status_code)
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise RemoteApiError(
            f"Redmine answered {response.status_code} on {path}", code=response.status_code
        ) from exc
    if not response.content or not response.content.strip():
        return None
    return response.json()
