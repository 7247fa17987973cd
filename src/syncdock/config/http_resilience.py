"""Settings for the HTTP clients the vendor adapters build."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

REMOTE_TIMEOUT_SECONDS: Final[float] = 10.0
CATALOGUE_TTL_SECONDS: Final[float] = 15 * 60.0


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Retries for idempotent calls only; POST creates are never replayed."""

    total: int = 2
    backoff_factor: float = 0.5
    max_backoff_wait: float = 4.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = frozenset({"GET", "HEAD", "PUT", "DELETE"})
    status_forcelist: frozenset[int] = frozenset({429, 502, 503, 504})
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.ConnectError,
        httpx.RemoteProtocolError,
    )


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class CacheConfig:
    enabled: bool = True
    backend: Literal["sqlite", "memory"] = "sqlite"
    default_ttl_seconds: float | None = CATALOGUE_TTL_SECONDS


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    timeout_seconds: float = REMOTE_TIMEOUT_SECONDS
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = None
    default_headers: Mapping[str, str] | None = None

    def for_catalogue(self) -> ResilienceConfig:
        """Same client settings with the catalogue response cache switched on."""

        return ResilienceConfig(
            name=f"{self.name}-catalogue",
            timeout_seconds=self.timeout_seconds,
            retry=self.retry,
            ratelimit=self.ratelimit,
            cache=CacheConfig(),
            default_headers=self.default_headers,
        )
