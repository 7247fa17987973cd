"""Resilient clients wired to an in-process ``httpx.MockTransport``."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import httpx

from syncdock.adapters.http_resilience import ResilientClient

if TYPE_CHECKING:
    from collections.abc import Callable

    from aiolimiter import AsyncLimiter

    from syncdock.config.http_resilience import ResilienceConfig

type Handler = Callable[[httpx.Request], httpx.Response]


def mock_client_factory(
    handler: Handler,
) -> Callable[[ResilienceConfig, AsyncLimiter | None], ResilientClient]:
    def factory(config: ResilienceConfig, limiter: AsyncLimiter | None) -> ResilientClient:
        client = ResilientClient(replace(config, cache=None), limiter)
        client._client = httpx.AsyncClient(  # noqa: SLF001
            transport=httpx.MockTransport(handler),
            headers=dict(config.default_headers or {}),
        )
        return client

    return factory


class RecordingHandler:
    """Serves queued responses per ``(method, path)`` and keeps every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: httpx.Response) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": f"no route for {request.url.path}"})
        return queue.pop(0) if len(queue) > 1 else queue[0]
