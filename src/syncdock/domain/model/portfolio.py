"""Internal records the connectors read and write."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import date


@dataclass(eq=False, kw_only=True)
class PortfolioEntry:
    """Root record a registration hangs off (an initiative or project)."""

    id: int | None = None
    name: str
    ref_id: str | None = None
    governance_id: str | None = None
    erp_ref_id: str | None = None
    description: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(eq=False, kw_only=True)
class Iteration:
    id: int | None = None
    portfolio_entry_id: int
    name: str
    description: str | None = None
    source: str | None = None
    end_date: date | None = None
    is_closed: bool = False
    story_points: int | None = None


@dataclass(eq=False, kw_only=True)
class Requirement:
    id: int | None = None
    portfolio_entry_id: int
    is_defect: bool = False
    external_ref_id: str | None = None
    external_link: str | None = None
    name: str
    description: str | None = None
    category: str | None = None
    status_id: int | None = None
    priority_id: int | None = None
    severity_id: int | None = None
    author_id: int | None = None
    iteration_id: int | None = None
    story_points: int | None = None
    initial_estimation: float | None = None
    effort: float | None = None
    remaining_effort: float | None = None
    is_scoped: bool | None = None


@dataclass(eq=False, kw_only=True)
class Actor:
    id: int | None = None
    uid: str
    email: str | None = None
    name: str | None = None


@dataclass(eq=False, kw_only=True)
class UserAccount:
    """Login account mirrored to provisioning connectors."""

    id: int | None = None
    uid: str
    first_name: str
    last_name: str
    mail: str
    is_active: bool = True
