"""Domain model for the synchronisation core."""

from __future__ import annotations

from .events import CustomAction, EventMessage, MessageKind, ReportEntry, new_transaction_id
from .links import (
    COLLECTION_RELATIONS,
    ONE_TO_ONE_RELATIONS,
    LinkRecord,
    ParentLink,
    ReconciliationScope,
    RelationType,
)
from .portfolio import Actor, Iteration, PortfolioEntry, Requirement, UserAccount
from .records import (
    AlreadyExists,
    ExternalRecord,
    RemoteAccount,
    RemoteIssue,
    RemoteProject,
    RemoteVersion,
)
from .registration import RegistrationState, collection_names

__all__ = [
    "COLLECTION_RELATIONS",
    "ONE_TO_ONE_RELATIONS",
    "Actor",
    "AlreadyExists",
    "CustomAction",
    "EventMessage",
    "ExternalRecord",
    "Iteration",
    "LinkRecord",
    "MessageKind",
    "ParentLink",
    "PortfolioEntry",
    "ReconciliationScope",
    "RegistrationState",
    "RelationType",
    "RemoteAccount",
    "RemoteIssue",
    "RemoteProject",
    "RemoteVersion",
    "ReportEntry",
    "Requirement",
    "UserAccount",
    "collection_names",
    "new_transaction_id",
]
