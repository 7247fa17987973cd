"""Messages routed by the event dispatcher and the reports they produce."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


class MessageKind(StrEnum):
    OBJECT_CREATED = "object_created"
    OBJECT_UPDATED = "object_updated"
    OBJECT_DELETED = "object_deleted"
    OBJECT_STATUS_CHANGED = "object_status_changed"
    CUSTOM = "custom"
    RESYNC = "resync"


class CustomAction(StrEnum):
    TRIGGER_LOAD = "trigger_load"
    RELOAD_MAPPINGS = "reload_mappings"
    RESYNC_ALL = "resync_all"


def new_transaction_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True, kw_only=True)
class EventMessage:
    kind: MessageKind
    internal_id: int | None = None
    relation_type: str | None = None
    action: CustomAction | None = None
    payload: Mapping[str, object] = field(default_factory=dict)
    transaction_id: str = field(default_factory=new_transaction_id)

    @classmethod
    def custom(
        cls,
        action: CustomAction,
        *,
        internal_id: int | None = None,
        transaction_id: str | None = None,
    ) -> EventMessage:
        return cls(
            kind=MessageKind.CUSTOM,
            action=action,
            internal_id=internal_id,
            transaction_id=transaction_id or new_transaction_id(),
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class ReportEntry:
    """One operator-visible line keyed by the triggering transaction."""

    transaction_id: str
    message: str
    root_id: int | None = None
    is_error: bool = False
    error: BaseException | None = None
