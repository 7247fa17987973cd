"""Rate limited, retrying HTTP access for the vendor remote clients.

Connector code is synchronous. Each vendor call therefore opens a fresh
``ResilientClient`` inside ``run_remote_call``, which drives exactly one
``asyncio.run``. Retry transport and cache storage never outlive that event
loop. The rate limiter does: a vendor client builds it once with
``limiter_for`` and hands it to every ``ResilientClient`` it opens, so the
limit holds across calls. The limiter only reads the monotonic loop clock and
holds no waiters between runs.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx
from aiolimiter import AsyncLimiter
from hishel import AsyncSqliteStorage
from hishel.httpx import AsyncCacheClient
from httpx_retries import Retry, RetryTransport

from syncdock.config.http_resilience import (
    REMOTE_TIMEOUT_SECONDS,
    CacheConfig,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
)
from syncdock.config.storage import get_storage_config
from syncdock.domain.errors import ConnectivityError, RemoteCallTimeout

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

__all__ = [
    "CacheConfig",
    "RateLimit",
    "ResilienceConfig",
    "ResilientClient",
    "RetryPolicy",
    "http_get_resilient",
    "limiter_for",
    "run_remote_call",
]

log = getLogger(__name__)


def _retry_for(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
    )


def limiter_for(config: ResilienceConfig) -> AsyncLimiter | None:
    limit = config.ratelimit
    return AsyncLimiter(limit.max_calls, limit.per_seconds) if limit else None


def _cache_storage(config: CacheConfig | None) -> AsyncSqliteStorage | None:
    if config is None or not config.enabled:
        return None
    if config.backend == "sqlite":
        database_path = str(get_storage_config().http_cache_path())
    elif config.backend == "memory":
        database_path = ":memory:"
    else:
        raise ValueError(f"Unsupported cache backend: {config.backend}")
    return AsyncSqliteStorage(
        database_path=database_path,
        default_ttl=config.default_ttl_seconds,
        refresh_ttl_on_access=True,
    )


class ResilientClient:
    """Async client for one remote operation.

    POST is not in the retry policy's methods, so creating a remote project or
    account is never sent twice.
    """

    def __init__(self, config: ResilienceConfig, limiter: AsyncLimiter | None = None) -> None:
        self.config = config
        self._limiter = limiter if limiter is not None else limiter_for(config)
        options: dict[str, Any] = {
            "timeout": config.timeout_seconds,
            "transport": RetryTransport(retry=_retry_for(config.retry)),
            "headers": dict(config.default_headers or {}),
        }
        storage = _cache_storage(config.cache)
        if storage is None:
            self._client: httpx.AsyncClient = httpx.AsyncClient(**options)
        else:
            self._client = AsyncCacheClient(**options, storage=storage)

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        log.debug("%s %s %s", self.config.name, method, url)
        if self._limiter is None:
            return await self._client.request(method, url, **kwargs)
        async with self._limiter:
            return await self._client.request(method, url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)


def run_remote_call[T](
    description: str,
    call: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float = REMOTE_TIMEOUT_SECONDS,
) -> T:
    """Run one async remote operation to completion from synchronous code.

    The whole operation, retries included, is bounded by ``timeout_seconds``.
    Timeouts surface as ``RemoteCallTimeout`` and other transport failures as
    ``ConnectivityError``; HTTP status errors are left to the caller.
    """

    async def bounded() -> T:
        return await asyncio.wait_for(call(), timeout_seconds)

    try:
        return asyncio.run(bounded())
    except (TimeoutError, httpx.TimeoutException) as exc:
        raise RemoteCallTimeout(
            f"{description} timed out after {timeout_seconds:g}s: {exc}"
        ) from exc
    except httpx.TransportError as exc:
        raise ConnectivityError(f"{description} failed: {exc}") from exc


async def http_get_resilient(config: ResilienceConfig, url: str) -> httpx.Response:
    async with ResilientClient(config) as client:
        return await client.get(url)
