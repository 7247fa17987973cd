"""Errors raised by the synchronisation core."""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for synchronisation failures."""


class ConnectivityError(SyncError):
    """Raised when the external system cannot be reached."""


class RemoteCallTimeout(ConnectivityError):
    """Raised when a remote call exceeds its timeout."""


class RemoteApiError(SyncError):
    """Raised when the external system answers with an error payload."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class LinkError(SyncError):
    """Raised when an identity link cannot be created."""


class DuplicateLinkError(LinkError):
    """Raised when a link would violate the registry uniqueness rules."""


class InvalidLinkError(LinkError):
    """Raised when a scoped link has no matching parent link."""


class NotRegisteredError(SyncError):
    """Raised when an action targets a root record that is not registered."""

    def __init__(self, root_id: int) -> None:
        super().__init__(f"Root record {root_id} is not registered for synchronisation")
        self.root_id = root_id


class AlreadyRegisteredError(SyncError):
    """Raised when a registration or remote counterpart already exists."""


class UnknownActionError(SyncError):
    """Raised when a manual trigger names an action nobody handles."""


class FeedError(SyncError):
    """Raised when a file feed cannot be read at all."""
