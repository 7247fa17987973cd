"""HTTP client for the Jira bridge REST API."""

from __future__ import annotations

import base64
import hashlib
import time
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
    ConfigResponse,
    CreateProjectRequest,
    CreateProjectResponse,
    ErrorResponse,
    IssuePayload,
    PingResponse,
    ProjectPayload,
)
from .translator import build_issues_request, parse_issue, parse_project

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

    from aiolimiter import AsyncLimiter

    from syncdock.domain.model import ExternalRecord, ReconciliationScope
    from syncdock.domain.ports import RemoteQuery

log = getLogger(__name__)

API_PATH: Final[str] = "/rest/syncdock-bridge/{version}/api"
TIMESTAMP_HEADER: Final[str] = "timestamp"
AUTH_HEADER: Final[str] = "auth-digest"
ISSUE_ACTIONS: Final[dict[str, str]] = {"needs": "/needs/find", "defects": "/defects/find"}


def compute_digest(key: str, request_uri: str, timestamp_ms: int | str) -> str:
    """``base64url(SHA-256(key#uri#timestamp))`` without padding."""

    raw = hashlib.sha256(f"{key}#{request_uri}#{timestamp_ms}".encode()).digest()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class DigestAuth(httpx.Auth):
    """Signs every request with the shared key, its path and a millisecond timestamp."""

    def __init__(self, key: str, *, clock: Callable[[], float] = time.time) -> None:
        self._key = key
        self._clock = clock

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        timestamp = str(int(self._clock() * 1000))
        request_uri = request.url.raw_path.decode("ascii")
        request.headers[TIMESTAMP_HEADER] = timestamp
        request.headers[AUTH_HEADER] = compute_digest(self._key, request_uri, timestamp)
        yield request


def _default_resilience_config() -> ResilienceConfig:
    return ResilienceConfig(name="jira", ratelimit=RateLimit(max_calls=10, per_seconds=1.0))


def _default_client_factory(
    config: ResilienceConfig, limiter: AsyncLimiter | None
) -> ResilientClient:
    return ResilientClient(config, limiter)


@dataclass(slots=True)
class JiraClient:
    host_url: str
    api_key: str
    api_version: str = "1"
    resilience: ResilienceConfig = field(default_factory=_default_resilience_config)
    client_factory: Callable[[ResilienceConfig, AsyncLimiter | None], ResilientClient] = field(
        default=_default_client_factory
    )
    clock: Callable[[], float] = time.time
    limiter: AsyncLimiter | None = field(init=False)

    def __post_init__(self) -> None:
        self.host_url = self.host_url.rstrip("/")
        self.limiter = limiter_for(self.resilience)

    @property
    def api_url(self) -> str:
        return f"{self.host_url}{API_PATH.format(version=self.api_version)}"

    def ping(self) -> bool:
        payload = self._call("GET", "/ping")
        return PingResponse.model_validate(payload).authenticated

    def fetch(self, scope: ReconciliationScope, query: RemoteQuery) -> list[ExternalRecord]:
        action = ISSUE_ACTIONS.get(query.collection)
        if action is None:
            log.debug("Jira bridge has no %s collection; nothing to fetch", query.collection)
            return []
        request = build_issues_request(scope.parent.external_id, query.root)
        payload = self._call("POST", action, json=request.model_dump(mode="json", by_alias=True))
        issues = [IssuePayload.model_validate(item) for item in _as_list(payload, action)]
        is_defect = query.collection == "defects"
        return [
            parse_issue(issue, host_url=self.host_url, is_defect=is_defect) for issue in issues
        ]

    def create(self, record: ExternalRecord) -> str | AlreadyExists:
        if not isinstance(record, RemoteProject):
            raise TypeError(f"Jira bridge can only create projects, got {type(record).__name__}")
        request = CreateProjectRequest(
            key=record.key, name=record.name, description=record.description
        )
        payload = self._call(
            "POST", "/projects/create", json=request.model_dump(mode="json", by_alias=True)
        )
        response = CreateProjectResponse.model_validate(payload)
        if response.already_exists:
            return AlreadyExists(response.project_ref_id)
        if not response.success or response.project_ref_id is None:
            raise RemoteApiError(f"Jira bridge could not create project {record.name!r}")
        return response.project_ref_id

    def discover_mapping_keys(self) -> dict[str, list[str]]:
        config = ConfigResponse.model_validate(self._call("GET", "/config", catalogue=True))
        return {
            "status": config.statuses,
            "priority": config.priorities,
            "severity": config.severities,
        }

    def list_projects(self) -> list[RemoteProject]:
        payload = self._call("GET", "/projects/all", catalogue=True)
        return [
            parse_project(ProjectPayload.model_validate(item))
            for item in _as_list(payload, "/projects/all")
        ]

    def find_project(self, project_ref_id: str) -> RemoteProject | None:
        payload = self._call("GET", "/projects/find", params={"projectRefId": project_ref_id})
        if payload is None:
            return None
        return parse_project(ProjectPayload.model_validate(payload))

    def _call(
        self,
        method: str,
        action: str,
        *,
        params: dict[str, str] | None = None,
        json: object = None,
        catalogue: bool = False,
    ) -> object:
        config = self.resilience.for_catalogue() if catalogue else self.resilience

        async def call() -> httpx.Response:
            async with self.client_factory(config, self.limiter) as client:
                return await client.request(
                    method,
                    f"{self.api_url}{action}",
                    params=params,
                    json=json,
                    auth=DigestAuth(self.api_key, clock=self.clock),
                )

        response = run_remote_call(
            f"Jira {method} {action}", call, timeout_seconds=config.timeout_seconds
        )
        return _decode(response, action)


def _decode(response: httpx.Response, action: str) -> object:
    if response.status_code == httpx.codes.BAD_REQUEST:
        error = ErrorResponse.model_validate(response.json())
        log.error("Jira bridge error on %s (%s): %s", action, error.code, error.message)
        raise RemoteApiError(error.message, code=error.code)
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise RemoteApiError(
            f"Jira bridge answered {response.status_code} on {action}",
            code=response.status_code,
        ) from exc
    if not response.content:
        return None
    return response.json()


def _as_list(payload: object, action: str) -> list[object]:
    if not isinstance(payload, list):
        raise RemoteApiError(f"Unexpected Jira bridge payload for {action}")
    return list(payload)
