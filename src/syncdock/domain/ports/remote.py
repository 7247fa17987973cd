"""Ports implemented by vendor adapters that talk to external systems."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from syncdock.domain.model import (
        AlreadyExists,
        ExternalRecord,
        PortfolioEntry,
        ReconciliationScope,
        RemoteAccount,
        RemoteProject,
        UserAccount,
    )


@dataclass(frozen=True, slots=True, kw_only=True)
class RemoteQuery:
    """What a reconciliation scope asks the remote system for.

    ``parameters`` are filter values already resolved against ``root``; the
    client decides how to send them.
    """

    collection: str
    root: PortfolioEntry
    parameters: Mapping[str, str | None] = field(default_factory=dict)
    trackers: tuple[str, ...] = ()


@runtime_checkable
class RemoteClient(Protocol):
    def ping(self) -> bool: ...

    def fetch(self, scope: ReconciliationScope, query: RemoteQuery) -> list[ExternalRecord]: ...

    def create(self, record: ExternalRecord) -> str | AlreadyExists: ...

    def discover_mapping_keys(self) -> Mapping[str, Sequence[str]]:
        """Return the external keys currently offered for each mapping table."""
        ...

    def list_projects(self) -> list[RemoteProject]: ...


@runtime_checkable
class RemoteAccountClient(Protocol):
    """Account provisioning on the external system."""

    def get_account(self, external_id: str) -> RemoteAccount | None: ...

    def find_account(self, *, login: str, mail: str) -> RemoteAccount | None: ...

    def create_account(self, account: UserAccount) -> str: ...

    def update_account(self, external_id: str, account: UserAccount) -> None: ...

    def delete_account(self, external_id: str) -> None: ...


@runtime_checkable
class AccountFeedSource(Protocol):
    """A file or export listing the accounts an identity source currently holds.

    ``read`` raises when the whole feed is unusable; rows it could not parse
    are left out and listed in ``rejected_rows``.
    """

    @property
    def name(self) -> str: ...

    def read(self) -> list[RemoteAccount]: ...

    @property
    def rejected_rows(self) -> Sequence[str]: ...
